"""Check the produced keys and signatures using GnuPG (if installed)."""
import io
import shutil
import subprocess

import pytest

from . import fake
from .. import converter, util

GPG = shutil.which('gpg')

pytestmark = pytest.mark.skipif(GPG is None, reason='GnuPG is not installed')

INPUTS = [
    b'',
    b'hello',
    b'hello\r\nworld\r\n',
    b'trailing \t\nwhitespace  \n',
    b'-leading dash\n--\nno final newline',
    bytes(bytearray(range(256))) * 800,  # several partial body parts
]


@pytest.fixture
def gnupg(tmp_path):
    home = tmp_path / 'gnupg'
    home.mkdir(mode=0o700)

    def gpg(*args):
        cmd = [GPG, '--homedir', str(home), '--batch', '--no-tty',
               '--trust-model', 'always', '--status-fd', '1'] + list(args)
        return subprocess.check_output(cmd, stderr=subprocess.STDOUT)

    c = converter.Converter(fake.create_entity(), verify=True)
    pubkey = tmp_path / 'pubkey.asc'
    pubkey.write_bytes(c.export('Alice', 'work', 'alice@example.com',
                                armored=True) + b'\n')
    gpg('--import', str(pubkey))
    return c, gpg


def test_check_sigs(gnupg):  # pylint: disable=redefined-outer-name
    _, gpg = gnupg
    output = gpg('--with-colons', '--check-sigs')
    assert b'uid:' in output
    assert b'Alice (work) <alice@example.com>' in output
    assert b'\nsig:!:' in output  # good self-signature


@pytest.mark.parametrize('data', INPUTS, ids=lambda d: 'len%d' % len(d))
@pytest.mark.parametrize('mode', [
    dict(clear_signed=False, detached=True, armored=True),
    dict(clear_signed=False, detached=True, armored=False),
    dict(clear_signed=True, detached=False, armored=False),
    dict(clear_signed=False, detached=False, armored=False),
])
def test_verify(gnupg, tmp_path, data, mode):  # pylint: disable=redefined-outer-name
    c, gpg = gnupg
    result = c.sign(io.BytesIO(data), **mode)

    signed = tmp_path / 'signed'
    signed.write_bytes(result)
    args = [str(signed)]
    if mode['detached'] and not mode['clear_signed']:
        original = tmp_path / 'original'
        original.write_bytes(data)
        args.append(str(original))

    output = gpg('--verify', *args)
    key_id = util.hexlify(c.entity.primary_key.key_id()).encode('ascii')
    assert b'[GNUPG:] GOODSIG ' + key_id in output

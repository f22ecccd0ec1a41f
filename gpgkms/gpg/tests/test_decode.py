import io

import pytest

from .. import decode, protocol
from ... import util


def test_subpackets():
    s = io.BytesIO(b'\x00\x05\x02\xAB\xCD\x01\xEF')
    assert decode.parse_subpackets(util.Reader(s)) == [b'\xAB\xCD', b'\xEF']


def test_subpackets_prefix():
    for n in [0, 1, 2, 4, 5, 10, 191, 192, 193,
              255, 256, 257, 8383, 8384, 65530]:
        item = b'?' * n  # create dummy subpacket
        prefixed = protocol.subpackets(item)
        result = decode.parse_subpackets(util.Reader(io.BytesIO(prefixed)))
        assert [item] == result


def test_mpi():
    s = io.BytesIO(b'\x00\x09\x01\x23')
    assert decode.parse_mpi(util.Reader(s)) == 0x123


def test_partial_literal():
    output = io.BytesIO()
    writer = protocol.PartialPacketWriter(output, tag=protocol.LITERAL_TAG,
                                          power=9)
    writer.write(protocol.literal_header(filename=b'x.bin', modified=7))
    writer.write(b'Z' * 2000)
    writer.close()

    literal, = decode.parse_packets(io.BytesIO(output.getvalue()))
    assert literal['type'] == 'literal'
    assert literal['format'] == b'b'
    assert literal['filename'] == b'x.bin'
    assert literal['date'] == 7
    assert literal['content'] == b'Z' * 2000


def test_new_format_packet():
    blob = b'\xcd\x0dAlice <a@b.c>'  # new format, definite length
    user_id, = decode.parse_packets(io.BytesIO(blob))
    assert user_id['value'] == b'Alice <a@b.c>'


def test_unknown_packet():
    p, = decode.parse_packets(io.BytesIO(protocol.packet(14, b'xyz')))
    assert p == {'type': 'unknown', 'tag': 14, 'raw': b'xyz'}


def test_indeterminate_length():
    with pytest.raises(ValueError):
        list(decode.parse_packets(io.BytesIO(b'\xaf' + b'data')))


def test_truncated_packet():
    with pytest.raises(EOFError):
        list(decode.parse_packets(io.BytesIO(b'\x88\x05AB')))


def test_remove_armor():
    blob = bytes(bytearray(range(100)))
    armored = protocol.armor(blob, 'TEST').encode('ascii')
    assert decode.remove_armor(armored) == blob
    assert decode.remove_armor(armored + b'\n') == blob

    header, rest = armored.split(b'\n', 1)
    armored = header + b'\nComment: x\n' + rest
    assert decode.remove_armor(armored) == blob


def test_remove_armor_bad_checksum():
    armored = protocol.armor(b'hello', 'TEST').encode('ascii')
    lines = armored.split(b'\n')
    lines[-2] = b'=AAAA'
    with pytest.raises(ValueError):
        decode.remove_armor(b'\n'.join(lines))


def test_remove_armor_missing_header():
    with pytest.raises(ValueError):
        decode.remove_armor(b'hello\nworld')


def test_split_clearsigned():
    message = (b'-----BEGIN PGP SIGNED MESSAGE-----\n'
               b'Hash: SHA256\n'
               b'\n'
               b'first  \n'
               b'- -dash\n'
               b'last\n'
               b'-----BEGIN PGP SIGNATURE-----\n'
               b'\n'
               b'AAAA\n'
               b'-----END PGP SIGNATURE-----\n')
    text, armored = decode.split_clearsigned(message)
    assert text == b'first\r\n-dash\r\nlast'
    assert armored.startswith(b'-----BEGIN PGP SIGNATURE-----\n')
    assert armored.strip().endswith(b'-----END PGP SIGNATURE-----')


def test_split_clearsigned_missing_header():
    with pytest.raises(ValueError):
        decode.split_clearsigned(b'-----BEGIN PGP SIGNATURE-----\n')

"""GPG protocol utilities."""

import base64
import hashlib
import logging
import struct

from .. import errors, util

log = logging.getLogger(__name__)

# https://tools.ietf.org/html/rfc4880#section-4.3
SIGNATURE_TAG = 2
ONE_PASS_SIGNATURE_TAG = 4
PUBLIC_KEY_TAG = 6
LITERAL_TAG = 11
USER_ID_TAG = 13

# https://tools.ietf.org/html/rfc4880#section-5.2.1
SIG_TYPE_BINARY = 0x00
SIG_TYPE_TEXT = 0x01
SIG_TYPE_POSITIVE_CERT = 0x13

# https://tools.ietf.org/html/rfc4880#section-9.4
HASH_ALGORITHMS = {
    'sha256': 8,
    'sha384': 9,
    'sha512': 10,
    'sha224': 11,
}

CURVE_NIST256 = 'nist256p1'
ECDSA_ALGO_ID = 19


def packet(tag, blob):
    """Create small GPG packet."""
    assert len(blob) < 2**32

    if len(blob) < 2**8:
        length_type = 0
    elif len(blob) < 2**16:
        length_type = 1
    else:
        length_type = 2

    fmt = ['>B', '>H', '>L'][length_type]
    leading_byte = 0x80 | (tag << 2) | (length_type)
    return struct.pack('>B', leading_byte) + util.prefix_len(fmt, blob)


def new_length(n):
    """Serialize new-format body length (RFC 4880 section-4.2.2)."""
    if n < 192:
        return struct.pack('>B', n)
    if n < 8384:
        n = n - 192
        return struct.pack('>BB', (n >> 8) + 192, n & 0xFF)
    return b'\xFF' + struct.pack('>L', n)


class PartialPacketWriter:
    """
    Stream a new-format packet body using partial body lengths.

    See https://tools.ietf.org/html/rfc4880#section-4.2.2.4 for details.
    The body is emitted in 2**`power` sized parts, followed by a final part
    with a definite length, so its total size need not be known in advance.
    """

    def __init__(self, output, tag, power=13):
        """Write packet `tag` into `output` (which must have a write())."""
        assert 9 <= power <= 30  # first partial length must be >= 512
        self.output = output
        self.tag = tag
        self.power = power
        self.size = 1 << power
        self.buf = bytearray()
        self.started = False

    def _write_header(self):
        if not self.started:
            self.output.write(struct.pack('>B', 0xC0 | self.tag))
            self.started = True

    def write(self, data):
        """Append `data` to packet body."""
        self.buf.extend(data)
        while len(self.buf) > self.size:
            self._write_header()
            self.output.write(struct.pack('>B', 224 + self.power))
            self.output.write(bytes(self.buf[:self.size]))
            del self.buf[:self.size]

    def close(self):
        """Write the last part of the packet body."""
        self._write_header()
        self.output.write(new_length(len(self.buf)))
        self.output.write(bytes(self.buf))
        self.buf = bytearray()


def subpacket(subpacket_type, fmt, *values):
    """Create GPG subpacket."""
    blob = struct.pack(fmt, *values) if values else fmt
    return struct.pack('>B', subpacket_type) + blob


def subpacket_long(subpacket_type, value):
    """Create GPG subpacket with 32-bit unsigned integer."""
    return subpacket(subpacket_type, '>L', value)


def subpacket_time(value):
    """Create GPG subpacket with time in seconds (since Epoch)."""
    return subpacket_long(2, value)


def subpacket_byte(subpacket_type, value):
    """Create GPG subpacket with 8-bit unsigned integer."""
    return subpacket(subpacket_type, '>B', value)


def subpacket_issuer(key_id):
    """Create GPG issuer key ID subpacket."""
    return subpacket(16, key_id)


def subpacket_prefix_len(item):
    """Prefix subpacket length according to RFC 4880 section-5.2.3.1."""
    n = len(item)
    if n >= 8384:
        prefix = b'\xFF' + struct.pack('>L', n)
    elif n >= 192:
        n = n - 192
        prefix = struct.pack('BB', (n // 256) + 192, n % 256)
    else:
        prefix = struct.pack('B', n)
    return prefix + item


def subpackets(*items):
    """Serialize several GPG subpackets."""
    prefixed = [subpacket_prefix_len(item) for item in items]
    return util.prefix_len('>H', b''.join(prefixed))


def mpi(value):
    """Serialize multipresicion integer using GPG format."""
    bits = value.bit_length()
    data_size = (bits + 7) // 8
    data_bytes = bytearray(data_size)
    for i in range(data_size):
        data_bytes[i] = value & 0xFF
        value = value >> 8

    data_bytes.reverse()
    return struct.pack('>H', bits) + bytes(data_bytes)


def _serialize_nist256(vk):
    return mpi((4 << 512) |
               (vk.pubkey.point.x() << 256) |
               (vk.pubkey.point.y()))


SUPPORTED_CURVES = {
    CURVE_NIST256: {
        # https://tools.ietf.org/html/rfc6637#section-11
        'oid': b'\x2A\x86\x48\xCE\x3D\x03\x01\x07',
        'algo_id': ECDSA_ALGO_ID,
        'serialize': _serialize_nist256,
    },
}


def hash_algo_id(hash_name):
    """Return RFC 4880 hash algorithm ID for a hashlib algorithm name."""
    try:
        return HASH_ALGORITHMS[hash_name]
    except KeyError:
        raise errors.UnsupportedAlgorithm(
            'unsupported hash algorithm: {}'.format(hash_name))


class PublicKey:
    """GPG representation for public key packets."""

    def __init__(self, created, verifying_key, curve_name=CURVE_NIST256):
        """Contruct using a ECDSA VerifyingKey object."""
        self.curve_info = SUPPORTED_CURVES[curve_name]
        self.created = int(created)  # time since Epoch
        self.verifying_key = verifying_key
        self.algo_id = self.curve_info['algo_id']

        hex_key_id = util.hexlify(self.key_id())[-8:]
        self.desc = 'GPG public key {}/{}'.format(curve_name, hex_key_id)

    def data(self):
        """Data for packet creation."""
        header = struct.pack('>BLB',
                             4,             # version
                             self.created,  # creation
                             self.algo_id)  # public key algorithm ID
        oid = util.prefix_len('>B', self.curve_info['oid'])
        blob = self.curve_info['serialize'](self.verifying_key)
        return header + oid + blob

    def data_to_hash(self):
        """Data for digest computation."""
        return b'\x99' + util.prefix_len('>H', self.data())

    def fingerprint(self):
        """V4 fingerprint (SHA-1 over the public key packet)."""
        return hashlib.sha1(self.data_to_hash()).digest()

    def key_id(self):
        """Short (8 byte) GPG key ID."""
        return self.fingerprint()[-8:]

    def __repr__(self):
        """Short (8 hexadecimal digits) GPG key ID."""
        return self.desc

    __str__ = __repr__


def one_pass_signature(sig_type, hash_name, public_algo, key_id):
    """See https://tools.ietf.org/html/rfc4880#section-5.4 for details."""
    return struct.pack('>BBBB',
                       3,  # version
                       sig_type,
                       hash_algo_id(hash_name),
                       public_algo) + key_id + b'\x01'  # not nested


def literal_header(filename=b'', modified=0, fmt=b'b'):
    """See https://tools.ietf.org/html/rfc4880#section-5.9 for details."""
    return (fmt + util.prefix_len('>B', filename[:255]) +
            struct.pack('>L', int(modified)))


def _split_lines(body, size):
    lines = []
    for i in range(0, len(body), size):
        lines.append(body[i:i+size] + '\n')
    return ''.join(lines)


def armor(blob, type_str):
    """
    See https://tools.ietf.org/html/rfc4880#section-6 for details.

    The result ends with the "-----END PGP ...-----" line (no newline).
    """
    head = '-----BEGIN PGP {}-----\n'.format(type_str)
    body = base64.b64encode(blob).decode('ascii')
    checksum = base64.b64encode(util.crc24(blob)).decode('ascii')
    tail = '-----END PGP {}-----'.format(type_str)
    return head + '\n' + _split_lines(body, 64) + '=' + checksum + '\n' + tail


def signature_header(sig_type, public_algo, hash_name):
    """Leading (hashed) part of a v4 signature packet."""
    return struct.pack('>BBBB',
                       4,         # version
                       sig_type,  # rfc4880 (section-5.2.1)
                       public_algo,
                       hash_algo_id(hash_name))


def make_signature(signer_func, hasher, public_algo,
                   hashed_subpackets, unhashed_subpackets, sig_type=0):
    """
    Create new GPG signature.

    `hasher` is a hashlib object, already updated with the signed data.
    """
    # pylint: disable=too-many-arguments
    header = signature_header(sig_type=sig_type, public_algo=public_algo,
                              hash_name=hasher.name)
    hashed = subpackets(*hashed_subpackets)
    unhashed = subpackets(*unhashed_subpackets)
    tail = b'\x04\xff' + struct.pack('>L', len(header) + len(hashed))
    hasher.update(header + hashed + tail)

    digest = hasher.digest()
    log.debug('signing digest: %s', util.hexlify(digest))
    params = signer_func(digest=digest)
    sig = b''.join(mpi(p) for p in params)

    return bytes(header + hashed + unhashed +
                 digest[:2] +  # used for decoder's sanity check
                 sig)  # actual ECDSA signature

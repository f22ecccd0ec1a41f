"""Decoders for GPG v2 data structures."""
import base64
import hashlib
import io
import logging
import struct

import ecdsa

from . import protocol
from .. import util

log = logging.getLogger(__name__)


def parse_subpackets(s):
    """See https://tools.ietf.org/html/rfc4880#section-5.2.3.1 for details."""
    subpackets = []
    total_size = s.readfmt('>H')
    data = s.read(total_size)
    s = util.Reader(io.BytesIO(data))

    while True:
        try:
            first = s.readfmt('B')
        except EOFError:
            break

        if first < 192:
            subpacket_len = first
        elif first < 255:
            subpacket_len = ((first - 192) << 8) + s.readfmt('B') + 192
        else:  # first == 255
            subpacket_len = s.readfmt('>L')

        subpackets.append(s.read(subpacket_len))

    return subpackets


def parse_mpi(s):
    """See https://tools.ietf.org/html/rfc4880#section-3.2 for details."""
    bits = s.readfmt('>H')
    blob = bytearray(s.read(int((bits + 7) // 8)))
    return sum(v << (8 * i) for i, v in enumerate(reversed(blob)))


def _parse_nist256p1_verifier(mpi):
    prefix, x, y = util.split_bits(mpi, 4, 256, 256)
    assert prefix == 4
    point = ecdsa.ellipticcurve.Point(curve=ecdsa.NIST256p.curve,
                                      x=x, y=y)
    vk = ecdsa.VerifyingKey.from_public_point(
        point=point, curve=ecdsa.curves.NIST256p,
        hashfunc=hashlib.sha256)

    def _nist256p1_verify(signature, digest):
        result = vk.verify_digest(signature=signature,
                                  digest=digest,
                                  sigdecode=lambda rs, order: rs)
        log.debug('nist256p1 ECDSA signature is OK (%s)', result)
    return _nist256p1_verify, vk


SUPPORTED_CURVES = {
    protocol.SUPPORTED_CURVES[protocol.CURVE_NIST256]['oid']:
        _parse_nist256p1_verifier,
}

HASH_ALGORITHMS = {v: k for k, v in protocol.HASH_ALGORITHMS.items()}


def _parse_literal(stream):
    """See https://tools.ietf.org/html/rfc4880#section-5.9 for details."""
    p = {'type': 'literal'}
    p['format'] = stream.readfmt('c')
    filename_len = stream.readfmt('B')
    p['filename'] = stream.read(filename_len)
    p['date'] = stream.readfmt('>L')
    p['content'] = stream.read()
    p['_to_hash'] = p['content']
    return p


def _parse_one_pass(stream):
    """See https://tools.ietf.org/html/rfc4880#section-5.4 for details."""
    p = {'type': 'one_pass'}
    p['version'] = stream.readfmt('B')
    p['sig_type'] = stream.readfmt('B')
    p['hash_alg'] = stream.readfmt('B')
    p['pubkey_alg'] = stream.readfmt('B')
    p['key_id'] = stream.read(8)
    p['nested'] = stream.readfmt('B')
    return p


def _find_issuer(subpackets):
    for subpacket in subpackets:
        if subpacket[:1] == b'\x10':  # issuer key ID
            return subpacket[1:]
    return None


def _parse_signature(stream):
    """See https://tools.ietf.org/html/rfc4880#section-5.2 for details."""
    p = {'type': 'signature'}

    to_hash = io.BytesIO()
    with stream.capture(to_hash):
        p['version'] = stream.readfmt('B')
        p['sig_type'] = stream.readfmt('B')
        p['pubkey_alg'] = stream.readfmt('B')
        p['hash_alg'] = stream.readfmt('B')
        p['hashed_subpackets'] = parse_subpackets(stream)

    # https://tools.ietf.org/html/rfc4880#section-5.2.4
    tail_to_hash = b'\x04\xff' + struct.pack('>L', to_hash.tell())

    p['_to_hash'] = to_hash.getvalue() + tail_to_hash

    p['unhashed_subpackets'] = parse_subpackets(stream)
    p['issuer'] = (_find_issuer(p['hashed_subpackets']) or
                   _find_issuer(p['unhashed_subpackets']))

    p['hash_prefix'] = stream.readfmt('2s')
    if p['pubkey_alg'] != protocol.ECDSA_ALGO_ID:
        raise ValueError('unsupported public key algo: {}'.format(
            p['pubkey_alg']))
    p['sig'] = (parse_mpi(stream), parse_mpi(stream))

    assert not stream.read()
    return p


def _parse_pubkey(stream):
    """See https://tools.ietf.org/html/rfc4880#section-5.5 for details."""
    p = {'type': 'pubkey'}
    packet = io.BytesIO()
    with stream.capture(packet):
        p['version'] = stream.readfmt('B')
        p['created'] = stream.readfmt('>L')
        p['algo'] = stream.readfmt('B')
        if p['algo'] != protocol.ECDSA_ALGO_ID:
            raise ValueError('unsupported public key algo: {}'.format(
                p['algo']))
        # https://tools.ietf.org/html/rfc6637#section-11
        oid_size = stream.readfmt('B')
        oid = stream.read(oid_size)
        if oid not in SUPPORTED_CURVES:
            raise ValueError('unsupported curve: {}'.format(
                util.hexlify(oid)))
        p['curve_oid'] = oid
        parser = SUPPORTED_CURVES[oid]

        mpi = parse_mpi(stream)
        log.debug('mpi: %x (%d bits)', mpi, mpi.bit_length())
        p['verifier'], p['verifying_key'] = parser(mpi)
        assert not stream.read()

    # https://tools.ietf.org/html/rfc4880#section-12.2
    packet_data = packet.getvalue()
    data_to_hash = (b'\x99' + struct.pack('>H', len(packet_data)) +
                    packet_data)
    p['key_id'] = hashlib.sha1(data_to_hash).digest()[-8:]
    p['_to_hash'] = data_to_hash
    log.debug('key ID: %s', util.hexlify(p['key_id']))
    return p


def _parse_user_id(stream):
    """See https://tools.ietf.org/html/rfc4880#section-5.11 for details."""
    value = stream.read()
    to_hash = b'\xb4' + util.prefix_len('>L', value)
    return {'type': 'user_id', 'value': value, '_to_hash': to_hash}


PACKET_TYPES = {
    protocol.SIGNATURE_TAG: _parse_signature,
    protocol.ONE_PASS_SIGNATURE_TAG: _parse_one_pass,
    protocol.PUBLIC_KEY_TAG: _parse_pubkey,
    protocol.LITERAL_TAG: _parse_literal,
    protocol.USER_ID_TAG: _parse_user_id,
}


def _read_new_length(reader):
    """Return (body length, is partial)."""
    first = reader.readfmt('B')
    if first < 192:
        return first, False
    if first < 224:
        return ((first - 192) << 8) + reader.readfmt('B') + 192, False
    if first == 255:
        return reader.readfmt('>L'), False
    return 1 << util.low_bits(first, 5), True


def _read_body(reader, value):
    tag = util.low_bits(value, 6)
    if util.bit(value, 6) == 0:
        length_type = util.low_bits(tag, 2)
        tag = tag >> 2
        if length_type == 3:
            raise ValueError('indeterminate packet length is unsupported')
        fmt = {0: '>B', 1: '>H', 2: '>L'}[length_type]
        return tag, reader.read(reader.readfmt(fmt))

    body = io.BytesIO()
    partial = True
    while partial:
        size, partial = _read_new_length(reader)
        log.debug('packet part length: %d', size)
        body.write(reader.read(size))
    return tag, body.getvalue()


def parse_packets(stream):
    """
    Support iterative parsing of available GPG packets.

    See https://tools.ietf.org/html/rfc4880#section-4.2 for details.
    """
    reader = util.Reader(stream)
    while True:
        try:
            value = reader.readfmt('B')
        except EOFError:
            return

        log.debug('prefix byte: %s', bin(value))
        assert util.bit(value, 7) == 1

        tag, packet_data = _read_body(reader, value)
        packet_type = PACKET_TYPES.get(tag)

        if packet_type is not None:
            p = packet_type(util.Reader(io.BytesIO(packet_data)))
            p['tag'] = tag
        else:
            p = {'type': 'unknown', 'tag': tag, 'raw': packet_data}

        log.debug('packet "%s": %s', p['type'], p)
        yield p


def digest_packets(packets, hasher):
    """Compute digest on specified packets, according to '_to_hash' field."""
    data_to_hash = io.BytesIO()
    for p in packets:
        data_to_hash.write(p['_to_hash'])
    hasher.update(data_to_hash.getvalue())
    return hasher.digest()


def _hasher(signature):
    hash_alg = HASH_ALGORITHMS.get(signature['hash_alg'])
    if hash_alg is None:
        raise ValueError('unsupported hash algo: {}'.format(
            signature['hash_alg']))
    return hashlib.new(hash_alg)


def _check_digest(signature, digest):
    if signature['hash_prefix'] != digest[:2]:
        raise ValueError('digest prefix mismatch')
    return digest


def verify_digest(pubkey, digest, signature, label):
    """Verify a digest signature from a specified public key."""
    verifier = pubkey['verifier']
    try:
        verifier(signature, digest)
        log.debug('%s is OK', label)
    except ecdsa.keys.BadSignatureError:
        log.error('Bad %s!', label)
        raise ValueError('Invalid ECDSA signature for {}'.format(label))


def load_public_key(pubkey_bytes):
    """Parse GPG public key, and verify all of its user ID certifications."""
    packets = list(parse_packets(io.BytesIO(pubkey_bytes)))
    pubkey = packets[0]
    if pubkey['type'] != 'pubkey':
        raise ValueError('missing primary public key packet')

    pubkey['user_ids'] = []
    user_id = None
    for p in packets[1:]:
        if p['type'] == 'user_id':
            user_id = p
            pubkey['user_ids'].append(p['value'])
        elif p['type'] == 'signature' and user_id is not None:
            digest = _check_digest(p, digest_packets(
                packets=[pubkey, user_id, p], hasher=_hasher(p)))
            verify_digest(pubkey=pubkey, digest=digest,
                          signature=p['sig'], label='GPG public key')
            user_id.setdefault('signatures', []).append(p)

    log.debug('loaded public key %s: %s',
              util.hexlify(pubkey['key_id']), pubkey['user_ids'])
    return pubkey


def load_signature(stream, original_data):
    """Load signature from stream, and compute GPG digest for verification."""
    signature, = list(parse_packets(stream))
    digest = digest_packets([{'_to_hash': original_data}, signature],
                            hasher=_hasher(signature))
    return signature, _check_digest(signature, digest)


def remove_armor(armored_data):
    """Decode armored data into its binary form."""
    lines = armored_data.strip().splitlines()
    if not (lines[0].startswith(b'-----BEGIN PGP ') and
            lines[-1].startswith(b'-----END PGP ')):
        raise ValueError('missing armor header or footer')
    lines = lines[1:-1]
    lines = lines[lines.index(b'') + 1:]  # skip armor headers
    body, checksum = lines[:-1], lines[-1]
    if not checksum.startswith(b'='):
        raise ValueError('missing armor checksum')
    payload = base64.b64decode(b''.join(body))
    if util.crc24(payload) != base64.b64decode(checksum[1:]):
        raise ValueError('armor checksum mismatch')
    return payload


def split_clearsigned(message):
    """Return the canonical signed text and the armored signature."""
    lines = message.split(b'\n')
    if lines[0] != b'-----BEGIN PGP SIGNED MESSAGE-----':
        raise ValueError('missing clear-signed message header')
    start = lines.index(b'') + 1  # skip "Hash:" armor headers
    end = lines.index(b'-----BEGIN PGP SIGNATURE-----')
    text = []
    for line in lines[start:end]:
        if line.startswith(b'- '):
            line = line[2:]
        text.append(line.rstrip(b' \t\r'))
    return b'\r\n'.join(text), b'\n'.join(lines[end:])


def _verify_signature(pubkey, signature, digest):
    if signature['issuer'] not in (None, pubkey['key_id']):
        raise ValueError('signature issuer {} does not match key {}'.format(
            util.hexlify(signature['issuer']),
            util.hexlify(pubkey['key_id'])))
    verify_digest(pubkey=pubkey, digest=digest,
                  signature=signature['sig'], label='GPG signature')


def verify(pubkey, signature, original_data):
    """Verify detached (binary or armored) signature over `original_data`."""
    if signature.startswith(b'-----BEGIN PGP SIGNATURE-----'):
        signature = remove_armor(signature)
    signature, digest = load_signature(io.BytesIO(signature), original_data)
    _verify_signature(pubkey, signature, digest)
    return signature


def verify_message(pubkey, message):
    """Verify one-pass signed message, returning its literal data packet."""
    one_pass, literal, signature = list(parse_packets(io.BytesIO(message)))
    if (one_pass['type'], literal['type'], signature['type']) != (
            'one_pass', 'literal', 'signature'):
        raise ValueError('unexpected signed message structure')
    digest = _check_digest(signature, digest_packets(
        [literal, signature], hasher=_hasher(signature)))
    _verify_signature(pubkey, signature, digest)
    return literal


def verify_clearsigned(pubkey, message):
    """Verify clear-signed message, returning its canonical text."""
    text, armored = split_clearsigned(message)
    verify(pubkey=pubkey, signature=armored, original_data=text)
    return text

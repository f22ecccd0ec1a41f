"""Create GPG ECDSA signatures and public keys using a remote signer."""
import hashlib
import io
import logging

from . import protocol
from .. import errors, util

log = logging.getLogger(__name__)

_INVALID_USER_ID_CHARS = set('()<>\x00')


def create_user_id(name, comment, email):
    """Render "Name (Comment) <email>", omitting an empty comment."""
    if not name:
        raise errors.InvalidIdentity('name must not be empty')
    if not email:
        raise errors.InvalidIdentity('e-mail must not be empty')
    for label, value in [('name', name), ('comment', comment),
                         ('e-mail', email)]:
        if _INVALID_USER_ID_CHARS.intersection(value or ''):
            raise errors.InvalidIdentity(
                'invalid character in {}: {!r}'.format(label, value))

    result = name
    if comment:
        result += ' ({})'.format(comment)
    result += ' <{}>'.format(email)
    return result


def _user_id_to_hash(user_id_bytes):
    # https://tools.ietf.org/html/rfc4880#section-5.2.4
    return b'\xb4' + util.prefix_len('>L', user_id_bytes)


def certify_user_id(user_id, pubkey, signer_func, hash_name='sha256'):
    """Create positive certification of `user_id` by the primary key."""
    user_id_bytes = user_id.encode('utf-8')
    hasher = hashlib.new(hash_name)
    hasher.update(pubkey.data_to_hash() + _user_id_to_hash(user_id_bytes))

    hashed_subpackets = [
        protocol.subpacket_time(pubkey.created),  # signature time
        protocol.subpacket_issuer(pubkey.key_id()),
        # https://tools.ietf.org/html/rfc4880#section-5.2.3.21
        protocol.subpacket_byte(0x1B, 1 | 2),  # key flags (certify & sign)
        # https://tools.ietf.org/html/rfc4880#section-5.2.3.19
        protocol.subpacket_byte(0x19, 1),  # primary user ID
        # https://tools.ietf.org/html/rfc4880#section-5.2.3.8
        protocol.subpacket_byte(0x15, protocol.hash_algo_id(hash_name)),
    ]
    log.info('self-certifying "%s" with %s', user_id, pubkey)
    return protocol.make_signature(
        signer_func=signer_func,
        hasher=hasher,
        public_algo=pubkey.algo_id,
        hashed_subpackets=hashed_subpackets,
        unhashed_subpackets=[],
        sig_type=protocol.SIG_TYPE_POSITIVE_CERT)


def serialize_public_key(pubkey, identities):
    """Serialize primary key, followed by (user ID, self-signature) pairs."""
    packets = [protocol.packet(tag=protocol.PUBLIC_KEY_TAG,
                               blob=pubkey.data())]
    for user_id, signature in identities:
        packets.append(protocol.packet(tag=protocol.USER_ID_TAG,
                                       blob=user_id.encode('utf-8')))
        packets.append(protocol.packet(tag=protocol.SIGNATURE_TAG,
                                       blob=signature))
    return b''.join(packets)


def _sign(hasher, pubkey, signer_func, sig_type, created):
    hashed_subpackets = [
        protocol.subpacket_time(created),  # signature time
        protocol.subpacket_issuer(pubkey.key_id())]
    signature = protocol.make_signature(
        signer_func=signer_func,
        hasher=hasher,
        public_algo=pubkey.algo_id,
        hashed_subpackets=hashed_subpackets,
        unhashed_subpackets=[],
        sig_type=sig_type)
    return protocol.packet(tag=protocol.SIGNATURE_TAG, blob=signature)


def sign_detached(chunks, pubkey, signer_func, created, hash_name='sha256'):
    """Create detached binary signature packet over the data `chunks`."""
    hasher = hashlib.new(hash_name)
    size = 0
    for chunk in chunks:
        hasher.update(chunk)
        size += len(chunk)
    log.debug('hashed %d bytes', size)
    return _sign(hasher=hasher, pubkey=pubkey, signer_func=signer_func,
                 sig_type=protocol.SIG_TYPE_BINARY, created=created)


def sign_inline(chunks, pubkey, signer_func, created, hash_name='sha256',
                filename=b'', modified=0):
    """Create one-pass signed message, embedding the data as literal packet."""
    # pylint: disable=too-many-arguments
    output = io.BytesIO()
    one_pass = protocol.one_pass_signature(
        sig_type=protocol.SIG_TYPE_BINARY, hash_name=hash_name,
        public_algo=pubkey.algo_id, key_id=pubkey.key_id())
    output.write(protocol.packet(tag=protocol.ONE_PASS_SIGNATURE_TAG,
                                 blob=one_pass))

    hasher = hashlib.new(hash_name)
    literal = protocol.PartialPacketWriter(output, tag=protocol.LITERAL_TAG)
    literal.write(protocol.literal_header(filename=filename,
                                          modified=modified))
    for chunk in chunks:
        hasher.update(chunk)
        literal.write(chunk)
    literal.close()

    output.write(_sign(hasher=hasher, pubkey=pubkey, signer_func=signer_func,
                       sig_type=protocol.SIG_TYPE_BINARY, created=created))
    return output.getvalue()


def _split_lines(chunks):
    """Yield lines (without b'\\n'), skipping the empty one after last EOL."""
    pending = bytearray()  # unterminated line, possibly spanning chunks
    for chunk in chunks:
        lines = chunk.split(b'\n')
        pending.extend(lines[0])
        if len(lines) == 1:
            continue
        yield bytes(pending)
        for line in lines[1:-1]:
            yield line
        pending = bytearray(lines[-1])
    if pending:
        yield bytes(pending)


def sign_clear(chunks, pubkey, signer_func, created, hash_name='sha256'):
    """
    Create clear-signed message.

    See https://tools.ietf.org/html/rfc4880#section-7 for details.
    Each line is hashed without trailing whitespace, and lines are joined
    using CRLF (the last line ending is not hashed).
    """
    output = io.BytesIO()
    output.write(b'-----BEGIN PGP SIGNED MESSAGE-----\n')
    output.write('Hash: {}\n\n'.format(hash_name.upper()).encode('ascii'))

    hasher = hashlib.new(hash_name)
    for index, line in enumerate(_split_lines(chunks)):
        line = line.rstrip(b' \t\r')
        if index:
            hasher.update(b'\r\n')
        hasher.update(line)
        if line.startswith(b'-'):
            output.write(b'- ')  # dash-escaping
        output.write(line + b'\n')

    signature = _sign(hasher=hasher, pubkey=pubkey, signer_func=signer_func,
                      sig_type=protocol.SIG_TYPE_TEXT, created=created)
    output.write(protocol.armor(signature, 'SIGNATURE').encode('ascii'))
    return output.getvalue()

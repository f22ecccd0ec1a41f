"""Export a remote key as PGP public key, and use it for PGP signatures."""

import collections
import io
import logging
import os
import struct
import time

import ecdsa

from . import errors, util
from .gpg import decode, encode, protocol

log = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

Identity = collections.namedtuple('Identity', ['user_id', 'self_signature'])


class Entity:
    """PGP identity: primary public key, its private key and user IDs."""

    def __init__(self, primary_key, private_key):
        """Make sure `private_key` (a Signer) matches `primary_key`."""
        expected = primary_key.verifying_key.to_string()
        if private_key.public_key().to_string() != expected:
            raise errors.KeyMismatch(
                '{} does not match {}'.format(private_key, primary_key))
        self.primary_key = primary_key
        self.private_key = private_key
        self.identities = collections.OrderedDict()

    def serialize(self):
        """Serialize the public key, with all its self-signed user IDs."""
        return encode.serialize_public_key(
            pubkey=self.primary_key,
            identities=[(i.user_id, i.self_signature)
                        for i in self.identities.values()])


def _file_hints(data):
    """Best-effort file name and modification time of the signed input."""
    name = getattr(data, 'name', None)
    if not isinstance(name, str) or name.startswith('<'):
        return b'', 0  # not a real file (e.g. stdin or in-memory buffer)
    filename = os.path.basename(name).encode('utf-8')
    try:
        modified = int(os.fstat(data.fileno()).st_mtime)
    except (OSError, ValueError, io.UnsupportedOperation) as e:
        log.debug('failed to stat %s: %s', name, e)
        modified = 0
    return filename, modified


class Converter:
    """Allow exporting an entity's public key, and signing with it."""

    def __init__(self, entity, hash_name='sha256', timeout=None,
                 now=time.time, verify=False):
        """
        Configure the conversion.

        `timeout` (in seconds) is passed to every remote signing request,
        `now` returns the signature creation time, and `verify` checks each
        remote signature against the primary key before using it.
        """
        # pylint: disable=too-many-arguments
        protocol.hash_algo_id(hash_name)  # raises UnsupportedAlgorithm
        self.entity = entity
        self.hash_name = hash_name
        self.timeout = timeout
        self.now = now
        self.verify = verify

    def _sign_digest(self, digest):
        """Sign using the entity's private key, returning (r, s) pair."""
        sig = self.entity.private_key.sign(digest=digest,
                                           hash_name=self.hash_name,
                                           timeout=self.timeout)
        vk = self.entity.primary_key.verifying_key
        try:
            params = ecdsa.util.sigdecode_der(sig, vk.curve.order)
        except ecdsa.der.UnexpectedDER as e:
            raise errors.SigningRequestFailed(
                'invalid signature {!r} from {}'.format(
                    sig, self.entity.private_key)) from e

        if self.verify:
            try:
                vk.verify_digest(signature=params, digest=digest,
                                 sigdecode=lambda rs, order: rs)
            except ecdsa.BadSignatureError as e:
                raise errors.SigningRequestFailed(
                    'signature from {} does not match {}'.format(
                        self.entity.private_key,
                        self.entity.primary_key)) from e
        return params

    def export(self, name, comment, email, armored):
        """
        Generate a PGP compatible public key, self-certifying a new user ID.

        If `armored` is true, the key is returned in armor format (without
        the trailing newline).
        """
        user_id = encode.create_user_id(name, comment, email)
        try:
            signature = encode.certify_user_id(
                user_id=user_id,
                pubkey=self.entity.primary_key,
                signer_func=self._sign_digest,
                hash_name=self.hash_name)
            self.entity.identities[user_id] = Identity(
                user_id=user_id, self_signature=signature)
            blob = self.entity.serialize()
        except (struct.error, AssertionError) as e:
            raise errors.SerializationFailed(
                'failed to serialize public key: {}'.format(e)) from e

        log.info('exported %s for "%s"', self.entity.primary_key, user_id)
        if armored:
            return protocol.armor(blob, 'PUBLIC KEY BLOCK').encode('ascii')
        return blob

    def sign(self, data, clear_signed, detached, armored):
        """
        Create a signature for the data read from `data` stream.

        If `clear_signed` is true, a clear text signed message is created.
        Otherwise, if `detached` is true, a detached signature is created (in
        armor format if `armored` is true). Otherwise, an inline signed
        message is created (and `armored` is ignored).
        """
        chunks = util.iter_chunks(data, CHUNK_SIZE)
        kwargs = dict(pubkey=self.entity.primary_key,
                      signer_func=self._sign_digest,
                      created=int(self.now()),
                      hash_name=self.hash_name)
        try:
            if clear_signed:
                return encode.sign_clear(chunks, **kwargs) + b'\n'
            if detached:
                result = encode.sign_detached(chunks, **kwargs)
                if armored:
                    result = protocol.armor(result, 'SIGNATURE')
                    result = result.encode('ascii') + b'\n'
                return result
            filename, modified = _file_hints(data)
            return encode.sign_inline(chunks, filename=filename,
                                      modified=modified, **kwargs)
        except OSError as e:
            raise errors.EncodingFailed(
                'failed to sign data: {}'.format(e)) from e
        except (struct.error, AssertionError) as e:
            raise errors.EncodingFailed(
                'failed to encode signature: {}'.format(e)) from e

    def check(self, signature, data=None):
        """
        Verify a signature made by this entity's primary key.

        A detached signature is verified over `data` (bytes). Otherwise,
        `signature` is an inline or clear-signed message, and its signed
        content is returned.
        """
        pubkey = decode.load_public_key(
            encode.serialize_public_key(self.entity.primary_key, []))
        try:
            if data is not None:
                decode.verify(pubkey=pubkey, signature=signature,
                              original_data=data)
                return data
            if signature.startswith(b'-----BEGIN PGP SIGNED MESSAGE-----'):
                return decode.verify_clearsigned(pubkey=pubkey,
                                                 message=signature)
            return decode.verify_message(pubkey=pubkey,
                                         message=signature)['content']
        except (ValueError, EOFError, AssertionError, struct.error) as e:
            raise errors.BadSignature(
                'failed to verify signature: {}'.format(e)) from e

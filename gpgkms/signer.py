"""Private key abstraction, backed by a remote "sign this digest" call."""

import collections
import hashlib
import logging

from . import errors, util

log = logging.getLogger(__name__)

SigningCapability = collections.namedtuple('SigningCapability',
                                           ['key_id', 'hash_name'])


class Signer:
    """Abstract private key: knows its public key and signs digests."""

    def public_key(self):
        """Return the public key (as ecdsa.VerifyingKey object)."""
        raise NotImplementedError()

    def sign(self, digest, hash_name, timeout=None):
        """Sign a pre-hashed digest and return the signature (as bytes)."""
        raise NotImplementedError()

    def __str__(self):
        """Human-readable representation."""
        return '{}'.format(self.__class__.__name__)


class RemoteSigner(Signer):
    """Sign digests using a remote key, which never leaves its service."""

    def __init__(self, capability, verifying_key, sign_func):
        """
        Wrap a remote key.

        `sign_func(key_id, digest, hash_name, timeout)` performs the actual
        remote request and returns the signature bytes.
        """
        self.capability = capability
        self.verifying_key = verifying_key
        self.sign_func = sign_func

    def public_key(self):
        """Return the previously retrieved public key."""
        return self.verifying_key

    def _verify_support(self, digest, hash_name):
        expected = self.capability.hash_name
        if hash_name != expected:
            raise errors.UnsupportedAlgorithm(
                'only {} digests are supported (got {})'.format(
                    expected, hash_name))
        size = hashlib.new(expected).digest_size
        if len(digest) != size:
            raise errors.UnsupportedAlgorithm(
                '{} digest must be {} bytes (got {})'.format(
                    expected, size, len(digest)))

    def sign(self, digest, hash_name, timeout=None):
        """Sign the digest remotely, returning the signature verbatim."""
        self._verify_support(digest=digest, hash_name=hash_name)
        log.debug('signing digest %s using %s',
                  util.hexlify(digest), self.capability.key_id)
        try:
            return self.sign_func(key_id=self.capability.key_id,
                                  digest=digest,
                                  hash_name=hash_name,
                                  timeout=timeout)
        except errors.SigningRequestFailed:
            raise
        except TimeoutError as e:
            raise errors.DeadlineExceeded(
                'signing with {} timed out'.format(self.capability.key_id)
            ) from e
        except Exception as e:  # pylint: disable=broad-except
            raise errors.SigningRequestFailed(
                'failed to sign digest with {}: {}'.format(
                    self.capability.key_id, e)) from e

    def __str__(self):
        """Human-readable representation."""
        return '{}({})'.format(self.__class__.__name__,
                               self.capability.key_id)

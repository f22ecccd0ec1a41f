"""Errors raised while converting a remote KMS key into a PGP identity."""


class Error(Exception):
    """Base class for gpg-kms errors."""


class InvalidIdentity(Error):
    """Missing or malformed user ID fields (name, comment or e-mail)."""


class UnsupportedAlgorithm(Error):
    """Digest or algorithm does not match the remote key's fixed algorithm."""


class KeyMismatch(Error):
    """Signer's public key differs from the PGP primary key."""


class SigningRequestFailed(Error):
    """Remote signing request failed (rejected, unavailable or invalid)."""


class DeadlineExceeded(SigningRequestFailed):
    """Remote signing request did not complete in time."""


class SerializationFailed(Error):
    """PGP packet encoding failed."""


class EncodingFailed(Error):
    """Reading the signed data or writing the signed output failed."""


class BadSignature(Error):
    """Signature does not verify against the PGP primary key."""


class DiscoveryFailed(Error):
    """Remote key metadata or public key could not be retrieved."""

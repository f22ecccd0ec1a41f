"""AWS KMS access: key discovery and remote digest signing."""

import logging

import boto3
import botocore.config
import botocore.exceptions
import ecdsa

from . import converter, errors, signer, util
from .gpg import protocol

log = logging.getLogger(__name__)

KEY_SPEC = 'ECC_NIST_P256'
KEY_USAGE = 'SIGN_VERIFY'
SIGNING_ALGORITHMS = {'sha256': 'ECDSA_SHA_256'}


@util.memoize
def create_client(region=None, profile=None, timeout=None, max_attempts=None):
    """Create KMS client (using ~/.aws/config and ~/.aws/credentials)."""
    config = {}
    if timeout is not None:
        config.update(connect_timeout=timeout, read_timeout=timeout)
    if max_attempts is not None:
        config.update(retries={'max_attempts': max_attempts})
    log.debug('creating KMS client: region=%s, profile=%s, config=%s',
              region, profile, config)
    session = boto3.Session(profile_name=profile)
    return session.client('kms', region_name=region,
                          config=botocore.config.Config(**config))


def describe_key(client, key_id):
    """Return public key (as VerifyingKey) and its creation time."""
    try:
        metadata = client.describe_key(KeyId=key_id)['KeyMetadata']
        response = client.get_public_key(KeyId=key_id)
    except (botocore.exceptions.ClientError,
            botocore.exceptions.BotoCoreError) as e:
        raise errors.DiscoveryFailed(
            'could not get key information for {}: {}'.format(key_id, e)
        ) from e

    key_spec = metadata.get('KeySpec', metadata.get('CustomerMasterKeySpec'))
    if key_spec != KEY_SPEC or metadata.get('KeyUsage') != KEY_USAGE:
        raise errors.UnsupportedAlgorithm(
            '{} is a {} key for {} (expected {} key for {})'.format(
                key_id, key_spec, metadata.get('KeyUsage'),
                KEY_SPEC, KEY_USAGE))

    try:
        vk = ecdsa.VerifyingKey.from_der(response['PublicKey'])
    except ecdsa.der.UnexpectedDER as e:
        raise errors.UnsupportedAlgorithm(
            'could not parse public key of {}: {}'.format(key_id, e)) from e
    created = int(metadata['CreationDate'].timestamp())
    log.info('%s (%s) created at %s', key_id, key_spec,
             metadata['CreationDate'])
    return vk, created


class Transport:
    """Issue a single KMS Sign request per digest."""

    def __init__(self, region=None, profile=None, max_attempts=None):
        """Clients are created on demand, per requested timeout."""
        self.region = region
        self.profile = profile
        self.max_attempts = max_attempts

    def client(self, timeout=None):
        """Return KMS client, configured for `timeout` seconds."""
        return create_client(region=self.region, profile=self.profile,
                             timeout=timeout, max_attempts=self.max_attempts)

    def __call__(self, key_id, digest, hash_name, timeout=None):
        """Sign the digest, returning a DER-encoded ECDSA signature."""
        try:
            response = self.client(timeout=timeout).sign(
                KeyId=key_id,
                Message=digest,
                MessageType='DIGEST',
                SigningAlgorithm=SIGNING_ALGORITHMS[hash_name])
        except (botocore.exceptions.ConnectTimeoutError,
                botocore.exceptions.ReadTimeoutError) as e:
            raise errors.DeadlineExceeded(
                'KMS signing with {} timed out: {}'.format(key_id, e)) from e
        except (botocore.exceptions.ClientError,
                botocore.exceptions.BotoCoreError) as e:
            raise errors.SigningRequestFailed(
                'KMS failed to sign with {}: {}'.format(key_id, e)) from e
        return response['Signature']


def create_entity(key_id, region=None, profile=None, timeout=None,
                  max_attempts=None):
    """Return a PGP entity wrapping the given KMS key."""
    transport = Transport(region=region, profile=profile,
                          max_attempts=max_attempts)
    vk, created = describe_key(transport.client(timeout=timeout), key_id)
    capability = signer.SigningCapability(key_id=key_id, hash_name='sha256')
    private_key = signer.RemoteSigner(capability=capability,
                                      verifying_key=vk,
                                      sign_func=transport)
    primary_key = protocol.PublicKey(created=created, verifying_key=vk)
    return converter.Entity(primary_key=primary_key, private_key=private_key)

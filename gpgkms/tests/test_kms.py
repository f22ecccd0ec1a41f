import datetime
import hashlib

import botocore.exceptions
import ecdsa
import mock
import pytest

from . import fake
from .. import converter, errors, kms

CREATION_DATE = datetime.datetime(2020, 9, 13, 12, 26, 40,
                                  tzinfo=datetime.timezone.utc)
DIGEST = hashlib.sha256(b'hello').digest()


def client_error(code, operation):
    return botocore.exceptions.ClientError(
        error_response={'Error': {'Code': code, 'Message': 'nope'}},
        operation_name=operation)


def create_kms_client(key_spec=kms.KEY_SPEC, key_usage=kms.KEY_USAGE):
    client = mock.Mock()
    client.describe_key.return_value = {'KeyMetadata': {
        'KeyId': fake.KEY_ID,
        'KeySpec': key_spec,
        'KeyUsage': key_usage,
        'CreationDate': CREATION_DATE,
    }}
    client.get_public_key.return_value = {
        'PublicKey': fake.VERIFYING_KEY.to_der()}
    transport = fake.FakeTransport()
    client.sign.side_effect = lambda **kwargs: {
        'Signature': transport(kwargs['KeyId'], kwargs['Message'], 'sha256')}
    return client


def test_describe_key():
    client = create_kms_client()
    vk, created = kms.describe_key(client, fake.KEY_ID)
    assert vk.to_string() == fake.VERIFYING_KEY.to_string()
    assert created == fake.CREATED
    client.describe_key.assert_called_once_with(KeyId=fake.KEY_ID)
    client.get_public_key.assert_called_once_with(KeyId=fake.KEY_ID)


def test_describe_key_legacy_spec():
    client = create_kms_client()
    metadata = client.describe_key.return_value['KeyMetadata']
    metadata['CustomerMasterKeySpec'] = metadata.pop('KeySpec')
    vk, _ = kms.describe_key(client, fake.KEY_ID)
    assert vk.to_string() == fake.VERIFYING_KEY.to_string()


@pytest.mark.parametrize('key_spec,key_usage', [
    ('RSA_2048', kms.KEY_USAGE),
    ('ECC_NIST_P384', kms.KEY_USAGE),
    (kms.KEY_SPEC, 'ENCRYPT_DECRYPT'),
])
def test_describe_unsupported_key(key_spec, key_usage):
    client = create_kms_client(key_spec=key_spec, key_usage=key_usage)
    with pytest.raises(errors.UnsupportedAlgorithm):
        kms.describe_key(client, fake.KEY_ID)


def test_describe_invalid_public_key():
    client = create_kms_client()
    client.get_public_key.return_value = {'PublicKey': b'\x30\x03garbage'}
    with pytest.raises(errors.UnsupportedAlgorithm):
        kms.describe_key(client, fake.KEY_ID)


def test_describe_key_failure():
    client = create_kms_client()
    client.describe_key.side_effect = client_error('NotFoundException',
                                                   'DescribeKey')
    with pytest.raises(errors.DiscoveryFailed) as e:
        kms.describe_key(client, fake.KEY_ID)
    assert 'NotFoundException' in str(e.value)


def test_create_client():
    with mock.patch('boto3.Session') as session:
        first = kms.create_client(region='test-1', profile='dev', timeout=5)
        second = kms.create_client(region='test-1', profile='dev', timeout=5)
        assert first is second
        session.assert_called_once_with(profile_name='dev')
        (service,), kwargs = session.return_value.client.call_args
        assert service == 'kms'
        assert kwargs['region_name'] == 'test-1'
        config = kwargs['config']
        assert config.connect_timeout == 5
        assert config.read_timeout == 5

        kms.create_client(region='test-1', profile='dev', timeout=1,
                          max_attempts=2)
        assert session.return_value.client.call_count == 2
        _, kwargs = session.return_value.client.call_args
        assert kwargs['config'].retries == {'max_attempts': 2}


def test_transport_sign():
    client = create_kms_client()
    transport = kms.Transport(region='test-2')
    with mock.patch.object(transport, 'client', return_value=client):
        sig = transport(key_id=fake.KEY_ID, digest=DIGEST, hash_name='sha256',
                        timeout=3)
        transport.client.assert_called_once_with(timeout=3)
    client.sign.assert_called_once_with(
        KeyId=fake.KEY_ID, Message=DIGEST, MessageType='DIGEST',
        SigningAlgorithm='ECDSA_SHA_256')
    assert fake.VERIFYING_KEY.verify_digest(
        sig, DIGEST, sigdecode=ecdsa.util.sigdecode_der)


def test_transport_failure():
    client = create_kms_client()
    client.sign.side_effect = client_error('AccessDeniedException', 'Sign')
    transport = kms.Transport()
    with mock.patch.object(transport, 'client', return_value=client):
        with pytest.raises(errors.SigningRequestFailed) as e:
            transport(key_id=fake.KEY_ID, digest=DIGEST, hash_name='sha256')
    assert not isinstance(e.value, errors.DeadlineExceeded)
    assert 'AccessDeniedException' in str(e.value)


def test_transport_timeout():
    client = create_kms_client()
    client.sign.side_effect = botocore.exceptions.ReadTimeoutError(
        endpoint_url='https://kms.test-3.amazonaws.com')
    transport = kms.Transport()
    with mock.patch.object(transport, 'client', return_value=client):
        with pytest.raises(errors.DeadlineExceeded):
            transport(key_id=fake.KEY_ID, digest=DIGEST, hash_name='sha256',
                      timeout=0.5)


def test_create_entity():
    client = create_kms_client()
    with mock.patch('gpgkms.kms.create_client', return_value=client):
        entity = kms.create_entity(fake.KEY_ID, region='test-4', timeout=2)
        assert isinstance(entity, converter.Entity)
        assert entity.primary_key.created == fake.CREATED
        assert str(entity.private_key) == 'RemoteSigner(alias/test)'

        c = converter.Converter(entity, timeout=2, verify=True)
        blob = c.export('Alice', '', 'alice@example.com', armored=False)
        assert c.entity.serialize() == blob
    _, kwargs = client.sign.call_args
    assert kwargs['KeyId'] == fake.KEY_ID
    assert kwargs['MessageType'] == 'DIGEST'

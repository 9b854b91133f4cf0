import datetime
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

import kes.cli.commands as commands
from kes.lib.backend import Backend, BackendError

KEY_ENV = ('KEY_SERVER', 'KEY_CLIENT_TLS_CERT_FILE', 'KEY_CLIENT_TLS_KEY_FILE', 'KEY_BACKEND', 'KEY_LOG_LEVEL')


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in KEY_ENV:
        monkeypatch.delenv(name, raising=False)


def write_pem_pair(directory, cn='client'):
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, cn)])
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name).issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now).not_valid_after(now + datetime.timedelta(days=1))
        .sign(key, hashes.SHA256())
    )
    cert_path = directory / f'{cn}.crt'
    key_path = directory / f'{cn}.key'
    cert_path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
    key_path.write_bytes(key.private_bytes(
        serialization.Encoding.PEM, serialization.PrivateFormat.PKCS8, serialization.NoEncryption()
    ))
    return cert_path, key_path, cert


@pytest.fixture
def pem_pair(tmp_path):
    return write_pem_pair(tmp_path)


class FakeBackend(Backend):
    def __init__(self, fail=False):
        self.calls = []
        self.configs = []
        self.fail = fail
        self.identities = {'3ecfcdf3': 'my-app', 'a1b2c3': 'admin'}
        self.policies = {'my-app': {'allow': ['/v1/key/create/*']}}

    def _record(self, config, name, *args):
        if self.fail:
            raise BackendError('connection refused')
        if config is not None:
            self.configs.append(config)
        self.calls.append((name,) + args)

    def serve(self, options):
        self._record(None, 'serve', options)

    def create_key(self, config, name):
        self._record(config, 'create_key', name)

    def delete_key(self, config, name):
        self._record(config, 'delete_key', name)

    def derive_key(self, config, name, context):
        self._record(config, 'derive_key', name, context)
        return b'plain-key', b'sealed-key'

    def decrypt_key(self, config, name, ciphertext, context):
        self._record(config, 'decrypt_key', name, ciphertext, context)
        return b'plain-key'

    def assign_identity(self, config, identity, policy):
        self._record(config, 'assign_identity', identity, policy)

    def list_identities(self, config, pattern):
        self._record(config, 'list_identities', pattern)
        return dict(self.identities)

    def forget_identity(self, config, identity):
        self._record(config, 'forget_identity', identity)

    def write_policy(self, config, name, policy):
        self._record(config, 'write_policy', name, policy)

    def read_policy(self, config, name):
        self._record(config, 'read_policy', name)
        return self.policies[name]

    def list_policies(self, config, pattern):
        self._record(config, 'list_policies', pattern)
        return ['zeta', 'alpha']

    def delete_policy(self, config, name):
        self._record(config, 'delete_policy', name)


@pytest.fixture
def backend(monkeypatch):
    b = FakeBackend()
    monkeypatch.setattr(commands, 'load_backend', lambda *a, **kw: b)
    return b

import hashlib
import ssl
import pytest
from click.testing import CliRunner
from cryptography.hazmat.primitives import serialization

import kes.lib.tls as tls
from kes.cli.dispatch import cli
from kes.lib.client import ClientConfig
from kes.lib.tls import TLSError, load_client_certificates, load_x509_key_pair
from conftest import write_pem_pair


def spki_sha256(cert):
    der = cert.public_key().public_bytes(
        serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
    )
    return hashlib.sha256(der).hexdigest()


def test_no_env_returns_empty_without_reading(monkeypatch):
    def boom(*args):
        raise AssertionError('must not read files')
    monkeypatch.setattr(tls, 'load_x509_key_pair', boom)
    assert load_client_certificates() == []


def test_both_set_loads_one_pair(monkeypatch, pem_pair):
    cert_path, key_path, cert = pem_pair
    monkeypatch.setenv('KEY_CLIENT_TLS_CERT_FILE', str(cert_path))
    monkeypatch.setenv('KEY_CLIENT_TLS_KEY_FILE', str(key_path))
    certs = load_client_certificates()
    assert len(certs) == 1
    assert certs[0].certificate == cert
    assert certs[0].identity == spki_sha256(cert)
    assert certs[0].chain == ()


def test_nonexistent_path(monkeypatch, pem_pair, tmp_path):
    cert_path, _, _ = pem_pair
    monkeypatch.setenv('KEY_CLIENT_TLS_CERT_FILE', str(cert_path))
    monkeypatch.setenv('KEY_CLIENT_TLS_KEY_FILE', str(tmp_path / 'missing.key'))
    with pytest.raises(TLSError, match='missing.key'):
        load_client_certificates()


def test_only_one_set_still_fails(monkeypatch, pem_pair):
    cert_path, _, _ = pem_pair
    monkeypatch.setenv('KEY_CLIENT_TLS_CERT_FILE', str(cert_path))
    with pytest.raises(TLSError, match='no private key file'):
        load_client_certificates()


def test_mismatched_key(tmp_path):
    cert_a, _, _ = write_pem_pair(tmp_path, 'a')
    _, key_b, _ = write_pem_pair(tmp_path, 'b')
    with pytest.raises(TLSError, match='does not match'):
        load_x509_key_pair(str(cert_a), str(key_b))


def test_garbage_certificate(tmp_path, pem_pair):
    _, key_path, _ = pem_pair
    bad = tmp_path / 'bad.crt'
    bad.write_text('not a certificate')
    with pytest.raises(TLSError, match='certificate'):
        load_x509_key_pair(str(bad), str(key_path))


def test_client_config_from_env(monkeypatch, pem_pair):
    cert_path, key_path, cert = pem_pair
    monkeypatch.setenv('KEY_SERVER', 'https://kes.example:7373')
    monkeypatch.setenv('KEY_CLIENT_TLS_CERT_FILE', str(cert_path))
    monkeypatch.setenv('KEY_CLIENT_TLS_KEY_FILE', str(key_path))
    config = ClientConfig.from_env(insecure=True)
    assert config.address == 'https://kes.example:7373'
    assert config.identity == spki_sha256(cert)
    ctx = config.ssl_context()
    assert ctx.verify_mode == ssl.CERT_NONE
    assert not ctx.check_hostname


def test_client_config_without_certificates():
    config = ClientConfig.from_env()
    assert config.certificates == ()
    assert config.identity is None
    assert config.ssl_context().verify_mode == ssl.CERT_REQUIRED


def test_cli_fails_fast_on_bad_credentials(monkeypatch, tmp_path, backend):
    monkeypatch.setenv('KEY_CLIENT_TLS_CERT_FILE', str(tmp_path / 'nope.crt'))
    monkeypatch.setenv('KEY_CLIENT_TLS_KEY_FILE', str(tmp_path / 'nope.key'))
    r = CliRunner().invoke(cli, ['create', 'my-key'], prog_name='kes')
    assert r.exit_code == 1
    assert 'Cannot load TLS key or cert for client auth' in r.output
    assert backend.calls == []

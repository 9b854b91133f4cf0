"""Client TLS credentials.

The certificate and key paths come from the environment. Once either one
is configured both have to load; there is no fallback to an
unauthenticated client.
"""
from __future__ import annotations
import hashlib, logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional, Tuple
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from kes.settings import client_tls_files

log = logging.getLogger(__name__)

class TLSError(Exception): ...


def identity_of(cert: x509.Certificate) -> str:
	"""Hex SHA-256 of the certificate's DER-encoded SubjectPublicKeyInfo."""
	spki = cert.public_key().public_bytes(
		serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
	)
	return hashlib.sha256(spki).hexdigest()


@dataclass(frozen=True)
class ClientCertificate:
	certificate: x509.Certificate
	private_key: object
	cert_file: str
	key_file: str
	chain: Tuple[x509.Certificate, ...] = field(default=())

	@property
	def identity(self) -> str:
		return identity_of(self.certificate)


def _read(path: str, what: str) -> bytes:
	if not path:
		raise TLSError(f'no {what} file specified')
	try:
		return Path(path).read_bytes()
	except OSError as e:
		raise TLSError(f'{path}: {e.strerror or e}') from e


def load_x509_key_pair(cert_file: str, key_file: str) -> ClientCertificate:
	"""Load a PEM certificate (plus optional chain) and its matching private key."""
	cert_pem = _read(cert_file, 'certificate')
	key_pem = _read(key_file, 'private key')
	try:
		certs = x509.load_pem_x509_certificates(cert_pem)
	except ValueError as e:
		raise TLSError(f'{cert_file}: failed to parse certificate PEM data: {e}') from e
	try:
		key = serialization.load_pem_private_key(key_pem, password=None)
	except (ValueError, TypeError) as e:
		raise TLSError(f'{key_file}: failed to parse private key: {e}') from e

	leaf = certs[0]
	fmt = (serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo)
	if key.public_key().public_bytes(*fmt) != leaf.public_key().public_bytes(*fmt):
		raise TLSError('private key does not match public key')
	return ClientCertificate(leaf, key, cert_file, key_file, tuple(certs[1:]))


def load_client_certificates(environ: Optional[Mapping[str, str]] = None) -> List[ClientCertificate]:
	"""Return the configured client certificate, or an empty list when none is configured."""
	cert_file, key_file = client_tls_files(environ)
	if not (cert_file or key_file):
		return []
	cert = load_x509_key_pair(cert_file, key_file)
	log.info(f"Loaded client certificate {cert_file} (identity {cert.identity})")
	return [cert]

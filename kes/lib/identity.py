"""Local identity tooling: compute and create X.509 client identities."""
from __future__ import annotations
import datetime, logging, os
from pathlib import Path
from typing import Tuple
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID
from .tls import identity_of

log = logging.getLogger(__name__)

class IdentityError(Exception): ...


def certificate_identity(path: Path) -> str:
	try:
		pem = Path(path).read_bytes()
	except OSError as e:
		raise IdentityError(f'{path}: {e.strerror or e}') from e
	try:
		cert = x509.load_pem_x509_certificate(pem)
	except ValueError as e:
		raise IdentityError(f'{path}: not a PEM certificate: {e}') from e
	return identity_of(cert)


def new_identity(subject: str, days: int) -> Tuple[ec.EllipticCurvePrivateKey, x509.Certificate]:
	"""Create a P-256 key and a self-signed client certificate for `subject`."""
	if not subject:
		raise IdentityError('subject must not be empty')
	if days <= 0:
		raise IdentityError('validity must be at least one day')
	key = ec.generate_private_key(ec.SECP256R1())
	name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, subject)])
	now = datetime.datetime.now(datetime.timezone.utc)
	try:
		cert = (
			x509.CertificateBuilder()
			.subject_name(name)
			.issuer_name(name)
			.public_key(key.public_key())
			.serial_number(x509.random_serial_number())
			.not_valid_before(now)
			.not_valid_after(now + datetime.timedelta(days=days))
			.add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
			.add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.CLIENT_AUTH]), critical=False)
			.sign(key, hashes.SHA256())
		)
	except (OverflowError, ValueError) as e:
		raise IdentityError(f'validity out of range: {days} days') from e
	return key, cert


def write_identity(key, cert: x509.Certificate, key_file: Path, cert_file: Path, force: bool = False) -> str:
	"""Write key (mode 0600) and certificate as PEM and return the identity."""
	key_file, cert_file = Path(key_file), Path(cert_file)
	if not force:
		for p in (key_file, cert_file):
			if p.exists():
				raise IdentityError(f'{p} already exists (use -force to overwrite)')
	key_pem = key.private_bytes(
		serialization.Encoding.PEM, serialization.PrivateFormat.PKCS8, serialization.NoEncryption()
	)
	try:
		fd = os.open(key_file, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
		with os.fdopen(fd, 'wb') as f:
			# O_CREAT's mode is ignored for a file that already exists
			os.fchmod(f.fileno(), 0o600)
			f.write(key_pem)
	except OSError as e:
		raise IdentityError(f'cannot write private key: {e}') from e
	try:
		cert_file.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
	except OSError as e:
		key_file.unlink(missing_ok=True)
		raise IdentityError(f'cannot write certificate: {e}') from e
	identity = identity_of(cert)
	log.info(f"Wrote identity {identity} -> {key_file}, {cert_file}")
	return identity

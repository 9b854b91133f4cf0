"""Client connection settings shared by every command that talks to a key server."""
from __future__ import annotations
import ssl
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple
from kes.settings import server_addr
from .tls import ClientCertificate, load_client_certificates


@dataclass(frozen=True)
class ClientConfig:
	address: str
	certificates: Tuple[ClientCertificate, ...] = ()
	insecure: bool = False

	@classmethod
	def from_env(cls, insecure: bool = False, environ: Optional[Mapping[str, str]] = None) -> 'ClientConfig':
		"""Resolve the server address and client certificate. Raises TLSError."""
		return cls(server_addr(environ), tuple(load_client_certificates(environ)), insecure)

	@property
	def identity(self) -> Optional[str]:
		return self.certificates[0].identity if self.certificates else None

	def ssl_context(self) -> ssl.SSLContext:
		ctx = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
		if self.insecure:
			ctx.check_hostname = False
			ctx.verify_mode = ssl.CERT_NONE
		for cert in self.certificates:
			ctx.load_cert_chain(cert.cert_file, cert.key_file)
		return ctx

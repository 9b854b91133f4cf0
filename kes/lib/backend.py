"""Key server backends.

The wire protocol lives outside this package. A backend is any object
implementing `Backend`, published under the `kes.backends` entry-point
group:

	[project.entry-points."kes.backends"]
	http = "kes_http:HTTPBackend"
"""
from __future__ import annotations
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from importlib import metadata
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple
from kes.settings import BACKEND_GROUP, backend_name
from .client import ClientConfig

log = logging.getLogger(__name__)

class BackendError(Exception): ...


@dataclass(frozen=True)
class ServerOptions:
	addr: str
	config: str = ''
	root: str = ''
	mtls_auth: str = 'verify'
	key: str = ''
	cert: str = ''
	# flag names given on the command line; these win over a config file
	explicit: FrozenSet[str] = frozenset()


class Backend(ABC):
	@abstractmethod
	def serve(self, options: ServerOptions) -> None: ...

	@abstractmethod
	def create_key(self, config: ClientConfig, name: str) -> None: ...

	@abstractmethod
	def delete_key(self, config: ClientConfig, name: str) -> None: ...

	@abstractmethod
	def derive_key(self, config: ClientConfig, name: str, context: Optional[bytes]) -> Tuple[bytes, bytes]:
		"""Return a fresh (plaintext, ciphertext) data key pair."""

	@abstractmethod
	def decrypt_key(self, config: ClientConfig, name: str, ciphertext: bytes, context: Optional[bytes]) -> bytes: ...

	@abstractmethod
	def assign_identity(self, config: ClientConfig, identity: str, policy: str) -> None: ...

	@abstractmethod
	def list_identities(self, config: ClientConfig, pattern: str) -> Dict[str, str]: ...

	@abstractmethod
	def forget_identity(self, config: ClientConfig, identity: str) -> None: ...

	@abstractmethod
	def write_policy(self, config: ClientConfig, name: str, policy: Dict[str, Any]) -> None: ...

	@abstractmethod
	def read_policy(self, config: ClientConfig, name: str) -> Dict[str, Any]: ...

	@abstractmethod
	def list_policies(self, config: ClientConfig, pattern: str) -> List[str]: ...

	@abstractmethod
	def delete_policy(self, config: ClientConfig, name: str) -> None: ...


def load_backend(name: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> Backend:
	"""Load a backend by entry-point name, `KEY_BACKEND`, or the first one installed."""
	name = name or backend_name(environ)
	eps = sorted(metadata.entry_points().select(group=BACKEND_GROUP), key=lambda ep: ep.name)
	if not eps:
		raise BackendError(f"no key server backend installed (entry-point group '{BACKEND_GROUP}')")
	if name:
		eps = [ep for ep in eps if ep.name == name]
		if not eps:
			raise BackendError(f"unknown key server backend '{name}'")
	ep = eps[0]
	try:
		obj = ep.load()
	except Exception as e:
		raise BackendError(f"cannot load backend '{ep.name}': {e}") from e
	backend = obj() if callable(obj) else obj
	log.debug(f"Using backend {ep.name} ({ep.value})")
	return backend

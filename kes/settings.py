"""Project configuration settings.

Environment variable names and defaults live here as constants. The
resolver functions read the environment on every call so nothing is
fixed at import time.
"""
from __future__ import annotations
import logging, os
from typing import Mapping, Optional, Tuple

# Client
SERVER_ENV = 'KEY_SERVER'
CLIENT_TLS_CERT_ENV = 'KEY_CLIENT_TLS_CERT_FILE'
CLIENT_TLS_KEY_ENV = 'KEY_CLIENT_TLS_KEY_FILE'
DEFAULT_SERVER = 'https://127.0.0.1:7373'

# Server
DEFAULT_LISTEN_ADDR = '0.0.0.0:7373'
MTLS_AUTH_MODES = ('verify', 'ignore')

# Backend discovery
BACKEND_ENV = 'KEY_BACKEND'
BACKEND_GROUP = 'kes.backends'

# Identities generated by `tool identity new`
DEFAULT_IDENTITY_DAYS = 30
DEFAULT_IDENTITY_KEY = 'private.key'
DEFAULT_IDENTITY_CERT = 'public.crt'

# Logging
LOG_LEVEL_ENV = 'KEY_LOG_LEVEL'
DEFAULT_LOG_LEVEL = 'WARNING'
LOG_FORMAT = '%(levelname)s %(name)s: %(message)s'

__all__ = [
	'SERVER_ENV','CLIENT_TLS_CERT_ENV','CLIENT_TLS_KEY_ENV','DEFAULT_SERVER',
	'DEFAULT_LISTEN_ADDR','MTLS_AUTH_MODES','BACKEND_ENV','BACKEND_GROUP',
	'DEFAULT_IDENTITY_DAYS','DEFAULT_IDENTITY_KEY','DEFAULT_IDENTITY_CERT',
	'LOG_LEVEL_ENV','DEFAULT_LOG_LEVEL','LOG_FORMAT',
	'server_addr','client_tls_files','backend_name','log_level','configure_logging'
]


def _env(environ: Optional[Mapping[str, str]]) -> Mapping[str, str]:
	return os.environ if environ is None else environ


def server_addr(environ: Optional[Mapping[str, str]] = None) -> str:
	"""Return the key server URL, falling back to the local TLS endpoint."""
	return _env(environ).get(SERVER_ENV) or DEFAULT_SERVER


def client_tls_files(environ: Optional[Mapping[str, str]] = None) -> Tuple[str, str]:
	env = _env(environ)
	return env.get(CLIENT_TLS_CERT_ENV, ''), env.get(CLIENT_TLS_KEY_ENV, '')


def backend_name(environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
	return _env(environ).get(BACKEND_ENV) or None


def log_level(environ: Optional[Mapping[str, str]] = None) -> int:
	name = (_env(environ).get(LOG_LEVEL_ENV) or DEFAULT_LOG_LEVEL).upper()
	level = logging.getLevelName(name)
	if not isinstance(level, int):
		return logging.getLevelName(DEFAULT_LOG_LEVEL)
	return level


def configure_logging(environ: Optional[Mapping[str, str]] = None) -> None:
	logging.basicConfig(level=log_level(environ), format=LOG_FORMAT)

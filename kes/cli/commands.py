"""Subcommand handlers.

Each handler receives the full argument tuple starting at its own name,
parses its flags with `split_flags` and hands the request to the
installed key server backend. Output is human readable on a terminal and
JSON otherwise.
"""
from __future__ import annotations
import base64, binascii, json, logging, sys
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Sequence
import click
from kes.settings import (
	DEFAULT_LISTEN_ADDR, MTLS_AUTH_MODES, DEFAULT_IDENTITY_DAYS, DEFAULT_IDENTITY_KEY, DEFAULT_IDENTITY_CERT
)
from kes.lib.backend import Backend, BackendError, ServerOptions, load_backend
from kes.lib.client import ClientConfig
from kes.lib.flags import FlagSet, split_flags, is_flag_set
from kes.lib.identity import IdentityError, certificate_identity, new_identity, write_identity
from kes.lib.terminal import is_term
from kes.lib.tls import TLSError
from .common import failf, route

log = logging.getLogger(__name__)

_INSECURE = """  -k, -insecure          Skip X.509 certificate validation during TLS handshake.
"""
_HELP = """  -h, -help              Show list of command-line options.
"""

_SERVER_USAGE = """usage: %s [options]

  -addr=<address>        The address of the server (default: """ + DEFAULT_LISTEN_ADDR + """)
  -config=<path>         Path to the server configuration file
  -root=<identity>       The identity of root - which can perform any operation
  -mtls-auth=<mode>      Controls how the server handles client certificates:
                           verify (default) or ignore
  -key=<path>            Path to the TLS private key
  -cert=<path>           Path to the TLS certificate

""" + _HELP

_CREATE_USAGE = "usage: %s <name> [options]\n\n" + _INSECURE + _HELP
_DELETE_USAGE = _CREATE_USAGE
_DERIVE_USAGE = "usage: %s <name> [<context>] [options]\n\n" + _INSECURE + _HELP
_DECRYPT_USAGE = "usage: %s <name> <ciphertext> [<context>] [options]\n\n" + _INSECURE + _HELP

_IDENTITY_USAGE = """usage: %s <command>

    assign               Assign an identity to a policy.
    list                 List all assigned identities.
    forget               Forget an identity.

""" + _HELP
_IDENTITY_ASSIGN_USAGE = "usage: identity %s <identity> <policy> [options]\n\n" + _INSECURE + _HELP
_IDENTITY_LIST_USAGE = "usage: identity %s [<pattern>] [options]\n\n" + _INSECURE + _HELP
_IDENTITY_FORGET_USAGE = "usage: identity %s <identity> [options]\n\n" + _INSECURE + _HELP

_POLICY_USAGE = """usage: %s <command>

    add                  Add a new policy.
    show                 Download and print a policy.
    list                 List all policies.
    delete               Delete a policy.

""" + _HELP
_POLICY_ADD_USAGE = "usage: policy %s <name> <file> [options]\n\n" + _INSECURE + _HELP
_POLICY_SHOW_USAGE = "usage: policy %s <name> [options]\n\n" + _INSECURE + _HELP
_POLICY_LIST_USAGE = "usage: policy %s [<pattern>] [options]\n\n" + _INSECURE + _HELP
_POLICY_DELETE_USAGE = _POLICY_SHOW_USAGE

_TOOL_USAGE = """usage: %s <command>

    identity             Identity management tools.

""" + _HELP
_TOOL_IDENTITY_USAGE = """usage: tool %s <command>

    of                   Compute the identity of a TLS certificate.
    new                  Create a new identity (private key + certificate).

""" + _HELP
_TOOL_IDENTITY_OF_USAGE = "usage: tool identity %s <certificate>\n\n" + _HELP
_TOOL_IDENTITY_NEW_USAGE = """usage: tool identity %s <subject> [options]

  -key=<path>            Path to the private key (default: """ + DEFAULT_IDENTITY_KEY + """)
  -cert=<path>           Path to the certificate (default: """ + DEFAULT_IDENTITY_CERT + """)
  -days=<n>              Validity of the certificate in days (default: """ + str(DEFAULT_IDENTITY_DAYS) + """)
  -force                 Overwrite existing files.

""" + _HELP

_SERVER_FLAGS = ('addr', 'config', 'root', 'mtls-auth', 'key', 'cert')


# -- shared plumbing --

def _client_flags(name: str, usage: str) -> FlagSet:
	flags = FlagSet(name, usage)
	flags.bool('k', help='skip TLS certificate validation')
	flags.bool('insecure', help='skip TLS certificate validation')
	return flags


def _client_config(flags: FlagSet) -> ClientConfig:
	try:
		return ClientConfig.from_env(insecure=flags['k'] or flags['insecure'])
	except TLSError as e:
		failf("Cannot load TLS key or cert for client auth: %s", e)


def _backend() -> Backend:
	try:
		return load_backend()
	except BackendError as e:
		failf("%s", e)


@contextmanager
def _backend_errors(action: str):
	try:
		yield
	except BackendError as e:
		failf("Failed to %s: %s", action, e)


def _b64decode(value: str, what: str) -> bytes:
	try:
		return base64.b64decode(value, validate=True)
	except (binascii.Error, ValueError):
		failf("Invalid %s: not base64 encoded", what)


def _b64(data: bytes) -> str:
	return base64.b64encode(data).decode('ascii')


def _expect(flags: FlagSet, args: Sequence[str], low: int, high: Optional[int] = None) -> None:
	high = low if high is None else high
	if len(args) < low:
		flags.fail('missing arguments')
	if len(args) > high:
		flags.fail('too many arguments')


# -- server --

def server(args: Sequence[str]) -> None:
	"""Start a key server."""
	flags = FlagSet(args[0], _SERVER_USAGE)
	flags.string('addr', DEFAULT_LISTEN_ADDR, 'listen address')
	flags.string('config', '', 'server configuration file')
	flags.string('root', '', 'root identity')
	flags.string('mtls-auth', 'verify', 'client certificate handling')
	flags.string('key', '', 'TLS private key')
	flags.string('cert', '', 'TLS certificate')
	_expect(flags, split_flags(flags, args[1:]), 0)

	if flags['mtls-auth'] not in MTLS_AUTH_MODES:
		flags.fail(f"invalid option for -mtls-auth: {flags['mtls-auth']!r}")
	options = ServerOptions(
		addr=flags['addr'], config=flags['config'], root=flags['root'],
		mtls_auth=flags['mtls-auth'], key=flags['key'], cert=flags['cert'],
		explicit=frozenset(n for n in _SERVER_FLAGS if is_flag_set(flags, n)),
	)
	log.debug(f"Starting server on {options.addr} (explicit flags: {sorted(options.explicit)})")
	backend = _backend()
	with _backend_errors('start server'):
		backend.serve(options)


# -- keys --

def create(args: Sequence[str]) -> None:
	flags = _client_flags(args[0], _CREATE_USAGE)
	rest = split_flags(flags, args[1:])
	_expect(flags, rest, 1)
	config = _client_config(flags); backend = _backend()
	with _backend_errors(f"create key '{rest[0]}'"):
		backend.create_key(config, rest[0])


def delete(args: Sequence[str]) -> None:
	flags = _client_flags(args[0], _DELETE_USAGE)
	rest = split_flags(flags, args[1:])
	_expect(flags, rest, 1)
	config = _client_config(flags); backend = _backend()
	with _backend_errors(f"delete key '{rest[0]}'"):
		backend.delete_key(config, rest[0])


def derive(args: Sequence[str]) -> None:
	flags = _client_flags(args[0], _DERIVE_USAGE)
	rest = split_flags(flags, args[1:])
	_expect(flags, rest, 1, 2)
	context = _b64decode(rest[1], 'context') if len(rest) > 1 else None
	config = _client_config(flags); backend = _backend()
	with _backend_errors('derive key'):
		plaintext, ciphertext = backend.derive_key(config, rest[0], context)

	if is_term(sys.stdout):
		click.echo(f"plaintext : {_b64(plaintext)}")
		click.echo(f"ciphertext: {_b64(ciphertext)}")
	else:
		click.echo(json.dumps({'plaintext': _b64(plaintext), 'ciphertext': _b64(ciphertext)}))


def decrypt(args: Sequence[str]) -> None:
	flags = _client_flags(args[0], _DECRYPT_USAGE)
	rest = split_flags(flags, args[1:])
	_expect(flags, rest, 2, 3)
	ciphertext = _b64decode(rest[1], 'ciphertext')
	context = _b64decode(rest[2], 'context') if len(rest) > 2 else None
	config = _client_config(flags); backend = _backend()
	with _backend_errors('decrypt key'):
		plaintext = backend.decrypt_key(config, rest[0], ciphertext, context)

	if is_term(sys.stdout):
		click.echo(f"plaintext: {_b64(plaintext)}")
	else:
		click.echo(json.dumps({'plaintext': _b64(plaintext)}))


# -- identities --

def identity(args: Sequence[str]) -> None:
	route(_IDENTITY_COMMANDS, args, _IDENTITY_USAGE)


def identity_assign(args: Sequence[str]) -> None:
	flags = _client_flags(args[0], _IDENTITY_ASSIGN_USAGE)
	rest = split_flags(flags, args[1:])
	_expect(flags, rest, 2)
	config = _client_config(flags); backend = _backend()
	with _backend_errors(f"assign identity to policy '{rest[1]}'"):
		backend.assign_identity(config, rest[0], rest[1])


def identity_list(args: Sequence[str]) -> None:
	flags = _client_flags(args[0], _IDENTITY_LIST_USAGE)
	rest = split_flags(flags, args[1:])
	_expect(flags, rest, 0, 1)
	pattern = rest[0] if rest else '*'
	config = _client_config(flags); backend = _backend()
	with _backend_errors('list identities'):
		identities = backend.list_identities(config, pattern)

	if is_term(sys.stdout):
		for ident in sorted(identities):
			click.echo(f"{ident} => {identities[ident]}")
	else:
		click.echo(json.dumps(identities, sort_keys=True))


def identity_forget(args: Sequence[str]) -> None:
	flags = _client_flags(args[0], _IDENTITY_FORGET_USAGE)
	rest = split_flags(flags, args[1:])
	_expect(flags, rest, 1)
	config = _client_config(flags); backend = _backend()
	with _backend_errors('forget identity'):
		backend.forget_identity(config, rest[0])


# -- policies --

def policy(args: Sequence[str]) -> None:
	route(_POLICY_COMMANDS, args, _POLICY_USAGE)


def policy_add(args: Sequence[str]) -> None:
	flags = _client_flags(args[0], _POLICY_ADD_USAGE)
	rest = split_flags(flags, args[1:])
	_expect(flags, rest, 2)
	name, path = rest
	try:
		document = json.loads(Path(path).read_text(encoding='utf-8'))
	except OSError as e:
		failf("Cannot read policy file %s: %s", path, e.strerror or e)
	except ValueError as e:
		failf("Policy file %s is not valid JSON: %s", path, e)
	if not isinstance(document, dict):
		failf("Policy file %s must contain a JSON object", path)
	config = _client_config(flags); backend = _backend()
	with _backend_errors(f"add policy '{name}'"):
		backend.write_policy(config, name, document)


def policy_show(args: Sequence[str]) -> None:
	flags = _client_flags(args[0], _POLICY_SHOW_USAGE)
	rest = split_flags(flags, args[1:])
	_expect(flags, rest, 1)
	config = _client_config(flags); backend = _backend()
	with _backend_errors(f"show policy '{rest[0]}'"):
		document = backend.read_policy(config, rest[0])
	click.echo(json.dumps(document, indent=2 if is_term(sys.stdout) else None, sort_keys=True))


def policy_list(args: Sequence[str]) -> None:
	flags = _client_flags(args[0], _POLICY_LIST_USAGE)
	rest = split_flags(flags, args[1:])
	_expect(flags, rest, 0, 1)
	config = _client_config(flags); backend = _backend()
	with _backend_errors('list policies'):
		names = backend.list_policies(config, rest[0] if rest else '*')
	for name in sorted(names):
		click.echo(name)


def policy_delete(args: Sequence[str]) -> None:
	flags = _client_flags(args[0], _POLICY_DELETE_USAGE)
	rest = split_flags(flags, args[1:])
	_expect(flags, rest, 1)
	config = _client_config(flags); backend = _backend()
	with _backend_errors(f"delete policy '{rest[0]}'"):
		backend.delete_policy(config, rest[0])


# -- tools --

def tool(args: Sequence[str]) -> None:
	route(_TOOL_COMMANDS, args, _TOOL_USAGE)


def tool_identity(args: Sequence[str]) -> None:
	route(_TOOL_IDENTITY_COMMANDS, args, _TOOL_IDENTITY_USAGE)


def tool_identity_of(args: Sequence[str]) -> None:
	"""Print the identity (SHA-256 of the public key info) of a certificate."""
	flags = FlagSet(args[0], _TOOL_IDENTITY_OF_USAGE)
	rest = split_flags(flags, args[1:])
	_expect(flags, rest, 1)
	try:
		click.echo(certificate_identity(Path(rest[0])))
	except IdentityError as e:
		failf("Cannot compute identity: %s", e)


def tool_identity_new(args: Sequence[str]) -> None:
	flags = FlagSet(args[0], _TOOL_IDENTITY_NEW_USAGE)
	flags.string('key', DEFAULT_IDENTITY_KEY, 'private key file')
	flags.string('cert', DEFAULT_IDENTITY_CERT, 'certificate file')
	flags.int('days', DEFAULT_IDENTITY_DAYS, 'validity in days')
	flags.bool('force', help='overwrite existing files')
	rest = split_flags(flags, args[1:])
	_expect(flags, rest, 1)
	try:
		key, cert = new_identity(rest[0], flags['days'])
		ident = write_identity(key, cert, Path(flags['key']), Path(flags['cert']), force=flags['force'])
	except IdentityError as e:
		failf("Cannot create identity: %s", e)

	if is_term(sys.stdout):
		click.echo(f"Identity:    {ident}")
		click.echo(f"Private key: {flags['key']}")
		click.echo(f"Certificate: {flags['cert']}")
	else:
		click.echo(ident)


_IDENTITY_COMMANDS = {'assign': identity_assign, 'list': identity_list, 'forget': identity_forget}
_POLICY_COMMANDS = {'add': policy_add, 'show': policy_show, 'list': policy_list, 'delete': policy_delete}
_TOOL_COMMANDS = {'identity': tool_identity}
_TOOL_IDENTITY_COMMANDS = {'of': tool_identity_of, 'new': tool_identity_new}

"""Program entry point (command dispatcher).

Global flags are parsed strictly: only -h/--help is known and anything
else before the command name is a usage error. Everything from the
command name on is handed, untouched, to the command's handler.
"""
from __future__ import annotations
import logging, os, sys
from types import MappingProxyType
from typing import Mapping, Optional, Sequence
import click
from kes.settings import configure_logging
from . import commands
from .common import Handler

log = logging.getLogger(__name__)

USAGE = """usage: %s <command>

    server               Start a key server.

    create               Create a new master key at a key server.
    delete               Delete a master key from a key server.

    derive               Derives a new data key from a master key.
    decrypt              Decrypt a encrypted data key using a master key.

    identity             Assign policies to identities.
    policy               Manage the key server policies.

    tool                 Run specific key and identity management tools.

  -h, --help             Show this list of command line options.
"""

COMMANDS: Mapping[str, Handler] = MappingProxyType({
	'server': commands.server,
	'create': commands.create,
	'delete': commands.delete,
	'derive': commands.derive,
	'decrypt': commands.decrypt,
	'identity': commands.identity,
	'policy': commands.policy,
	'tool': commands.tool,
})


class Dispatcher(click.Command):
	"""A click command whose help and usage are the fixed command list."""

	def get_usage(self, ctx: click.Context) -> str:
		return USAGE % ctx.info_name

	def get_help(self, ctx: click.Context) -> str:
		# click.echo appends the final newline
		return self.get_usage(ctx).rstrip('\n')


def _usage_exit(ctx: click.Context) -> None:
	click.echo(ctx.get_usage(), nl=False)
	ctx.exit(2)


@click.command(
	cls=Dispatcher,
	context_settings={'help_option_names': ['-h', '--help'], 'allow_interspersed_args': False},
)
@click.argument('args', nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def cli(ctx: click.Context, args):
	"""Key server command line."""
	if not args:
		_usage_exit(ctx)
	handler = COMMANDS.get(args[0])
	if handler is None:
		_usage_exit(ctx)
	log.debug(f"Dispatching {args[0]} with {len(args) - 1} argument(s)")
	handler(tuple(args))


def run(argv: Optional[Sequence[str]] = None) -> None:
	configure_logging()
	args = sys.argv[1:] if argv is None else list(argv)
	cli.main(args=args, prog_name=os.path.basename(sys.argv[0]) or 'kes')

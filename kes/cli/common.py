"""Helpers shared by the dispatcher and the command handlers."""
from __future__ import annotations
import logging
from typing import Callable, Mapping, NoReturn, Sequence
import click
from kes.lib.flags import FlagError

log = logging.getLogger(__name__)

Handler = Callable[[Sequence[str]], None]

class CommandError(click.ClickException):
	"""Fatal runtime error. Printed to stderr, exit status 1."""
	exit_code = 1


def failf(fmt: str, *args) -> NoReturn:
	raise CommandError(fmt % args if args else fmt)


def route(table: Mapping[str, Handler], args: Sequence[str], usage: str) -> None:
	"""Dispatch `args` on args[1] for commands with their own subcommands.

	The handler gets the slice starting at the subcommand name, so
	`identity list x` calls the `list` handler with ('list', 'x').
	"""
	prog = args[0]
	if len(args) < 2 or args[1] not in table:
		if len(args) >= 2 and args[1] in ('-h', '--help', '-help'):
			click.echo(usage % prog, err=True, nl=False)
			raise click.exceptions.Exit(0)
		raise FlagError(f"{prog}: missing or unknown command", usage % prog)
	log.debug(f"{prog}: routing to {args[1]}")
	table[args[1]](tuple(args[1:]))

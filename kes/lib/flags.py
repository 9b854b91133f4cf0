"""Per-command flag sets.

Flags use the single-dash grammar (`-name`, `-name=value`, `--name=value`).
Values are converted by click parameter types so a flag set can declare
`click.INT`, `click.BOOL`, `click.Path()` and friends.

`split_flags` lets flags appear anywhere among the positional arguments.
It hands each flag token to the flag set on its own, so a value must be
attached with `=`: `-addr=:7373` works, `-addr :7373` does not.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Union
import click


class FlagError(click.UsageError):
	"""A malformed or unknown flag. Shown with the flag set's usage, exit status 2."""

	def __init__(self, message: str, usage: str = ''):
		super().__init__(message)
		self.usage = usage

	def show(self, file=None) -> None:
		click.echo(f'Error: {self.format_message()}', file=file, err=True)
		if self.usage:
			click.echo(self.usage, file=file, err=True, nl=False)


@dataclass
class Flag:
	name: str
	type: click.ParamType
	default: Any
	help: str = ''
	value: Any = None

	@property
	def is_bool(self) -> bool:
		return isinstance(self.type, click.types.BoolParamType)


class FlagSet:
	def __init__(self, name: str, usage: Union[str, Callable[[str], str], None] = None):
		self.name = name
		self._usage = usage
		self._flags: Dict[str, Flag] = {}
		self._actual: Dict[str, Flag] = {}
		self.args: List[str] = []

	# -- definition --

	def add(self, name: str, type: Any = None, default: Any = None, help: str = '') -> Flag:
		if not name or name.startswith('-') or '=' in name:
			raise ValueError(f'flag name {name!r} is invalid')
		if name in self._flags:
			raise ValueError(f'{self.name} flag redefined: {name}')
		flag = Flag(name, click.types.convert_type(type, default), default, help, default)
		self._flags[name] = flag
		return flag

	def string(self, name: str, default: str = '', help: str = '') -> Flag:
		return self.add(name, click.STRING, default, help)

	def bool(self, name: str, default: bool = False, help: str = '') -> Flag:
		return self.add(name, click.BOOL, default, help)

	def int(self, name: str, default: int = 0, help: str = '') -> Flag:
		return self.add(name, click.INT, default, help)

	# -- lookup --

	def __getitem__(self, name: str) -> Any:
		return self._flags[name].value

	def visited(self) -> List[Flag]:
		"""Flags that were set during parsing, sorted by name."""
		return [self._actual[n] for n in sorted(self._actual)]

	# -- usage --

	@property
	def usage(self) -> str:
		if callable(self._usage):
			return self._usage(self.name)
		if self._usage is not None:
			return self._usage % self.name if '%s' in self._usage else self._usage
		lines = [f'usage of {self.name}:']
		for flag in sorted(self._flags.values(), key=lambda f: f.name):
			lines.append(f'  -{flag.name} {flag.type.name}\t{flag.help} (default {flag.default!r})')
		return '\n'.join(lines) + '\n'

	def print_usage(self) -> None:
		click.echo(self.usage, err=True, nl=False)

	def fail(self, message: str) -> None:
		raise FlagError(message, self.usage)

	# -- parsing --

	def parse(self, arguments: Iterable[str]) -> None:
		"""Parse flags from the front of `arguments`.

		Parsing stops at the first non-flag token or after a bare `--`;
		whatever is left over is stored in `args`.
		"""
		args = list(arguments)
		while args and self._parse_one(args):
			pass
		self.args = args

	def _parse_one(self, args: List[str]) -> bool:
		s = args[0]
		if len(s) < 2 or s[0] != '-':
			return False
		minuses = 1
		if s[1] == '-':
			minuses = 2
			if len(s) == 2:
				del args[0]
				return False
		name = s[minuses:]
		if not name or name[0] in '-=':
			self.fail(f'bad flag syntax: {s}')
		del args[0]

		value: Optional[str] = None
		if '=' in name:
			name, value = name.split('=', 1)

		flag = self._flags.get(name)
		if flag is None:
			if name in ('h', 'help'):
				self.print_usage()
				raise click.exceptions.Exit(0)
			self.fail(f'flag provided but not defined: -{name}')

		if flag.is_bool:
			if value is None:
				value = 'true'
		elif value is None:
			if not args:
				self.fail(f'flag needs an argument: -{name}')
			value = args.pop(0)

		try:
			flag.value = flag.type.convert(value, None, None)
		except click.BadParameter as e:
			self.fail(f'invalid value "{value}" for flag -{name}: {e.format_message()}')
		self._actual[name] = flag
		return True


def split_flags(flags: FlagSet, args: Iterable[str]) -> List[str]:
	"""Parse every `-` token into `flags` and return the rest in order."""
	positionals = []
	for arg in args:
		if arg.startswith('-'):
			flags.parse([arg])
		else:
			positionals.append(arg)
	return positionals


def is_flag_set(flags: FlagSet, name: str) -> bool:
	"""True if `name` was given on the command line, even when set to its default."""
	return any(f.name == name for f in flags.visited())

"""Terminal detection for prompts and output formatting."""
from __future__ import annotations
import io, os


def is_term(stream) -> bool:
	"""True if `stream` (a file object or descriptor) is attached to a terminal."""
	if isinstance(stream, int):
		fd = stream
	else:
		try:
			fd = stream.fileno()
		except (AttributeError, io.UnsupportedOperation, ValueError, OSError):
			return False
	try:
		return os.isatty(fd)
	except OSError:
		return False

"""Program entry point.

Routing is handled by the dispatcher; main remains a thin wrapper.
"""
from __future__ import annotations
from kes.cli.dispatch import run

def main():  # pragma: no cover - thin wrapper
	run()

if __name__ == '__main__':  # pragma: no cover
	main()

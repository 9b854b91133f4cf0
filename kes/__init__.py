"""kes - command line of a key management server."""

__version__ = '0.1.0'

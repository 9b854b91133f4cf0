"""Primitives shared by the commands: flags, TLS, terminal, backends."""

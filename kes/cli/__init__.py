"""Command dispatcher and subcommand handlers."""

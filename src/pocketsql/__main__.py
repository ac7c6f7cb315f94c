"""Entry point for running pocketsql as a module."""

from pocketsql.server import cli_entry

if __name__ == "__main__":
    cli_entry()

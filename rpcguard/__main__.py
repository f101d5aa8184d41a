"""Main entry point when executing rpcguard as a package.

This allows running the package using python -m rpcguard.
"""

from rpcguard.main import cli_entry_point

if __name__ == "__main__":
    cli_entry_point()

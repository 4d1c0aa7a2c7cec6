"""Allow ``python -m jmaptest``."""

from jmaptest.cli import cli

if __name__ == "__main__":
    cli()

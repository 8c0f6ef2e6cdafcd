"""Entry point for ``python -m ghdeploy``."""

from ghdeploy.cli import run

if __name__ == "__main__":
    run()

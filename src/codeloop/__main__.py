"""Allow ``python -m codeloop``."""

from codeloop.cli.app import app

if __name__ == "__main__":
    app()

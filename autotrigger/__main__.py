"""Allow ``python -m autotrigger``."""

from autotrigger.cli.commands import app

if __name__ == "__main__":
    app()

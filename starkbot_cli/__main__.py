"""Entry point for ``python -m starkbot_cli``."""

from starkbot_cli.cli.commands import app

if __name__ == "__main__":
    app()

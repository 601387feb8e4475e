"""Allow ``python -m up_to_code``."""

from up_to_code.main import cli

if __name__ == "__main__":
    cli()

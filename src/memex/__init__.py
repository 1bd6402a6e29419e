"""memex - a personal second brain for the pages you read."""

__version__ = "0.1.0"


def main() -> None:
    """Run the CLI entry point with lazy import."""
    from memex.cli.main import main as cli_main

    cli_main()


__all__ = ["main", "__version__"]

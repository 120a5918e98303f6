"""
Stratyx CLI Entry Point

Allows running the package as a module: python -m stratyx
"""


def main():
    """Main entry point for the CLI."""
    from stratyx.cli import app

    app()


if __name__ == "__main__":
    main()

"""Entry point for ``python -m cercagen`` and the ``cercagen`` script."""

import sys


def main() -> int:
    """Main entry point for the cercagen command.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    from cercagen.cli import cli_main

    return cli_main()


if __name__ == "__main__":
    sys.exit(main())

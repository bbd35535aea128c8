"""Entry point for aucomp.

Usage:
    python -m aucomp -i <input> -o <output> -a "<ffmpeg arguments>"
"""

import sys


def main() -> None:
    """Run the command-line interface and exit with its status."""
    from aucomp.cli import main as cli_main

    sys.exit(cli_main())


if __name__ == "__main__":
    main()

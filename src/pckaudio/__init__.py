"""pckaudio package entrypoint."""

from pckaudio.cli.app import main as _cli_main


def main() -> None:
    """Run the pckaudio CLI."""
    _cli_main()

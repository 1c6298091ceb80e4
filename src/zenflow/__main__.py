"""Allow ``python -m zenflow``."""

from zenflow.cli import main

main()

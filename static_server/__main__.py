"""Allow ``python -m static_server``."""

from static_server.cli import main

main()

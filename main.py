"""Run the hardened static HTTPS server from a source checkout."""

from static_server.cli import main

if __name__ == "__main__":
    main()

"""CLI entry point: python -m idlecore.mcp <config.yaml> [data_dir]"""

from __future__ import annotations

import logging
import sys


def main() -> None:
    if len(sys.argv) < 2:
        print("Usage: python -m idlecore.mcp <config.yaml> [data_dir]", file=sys.stderr)
        print("Example: python -m idlecore.mcp examples/gold_rush.yaml", file=sys.stderr)
        sys.exit(1)

    # stdout carries the protocol; logs go to stderr
    logging.basicConfig(level=logging.WARNING, stream=sys.stderr)

    from idlecore.config import load_config
    from idlecore.mcp.server import create_server
    from idlecore.persistence import InMemoryDatabase, JSONFileDatabase

    config = load_config(sys.argv[1])
    database = JSONFileDatabase(sys.argv[2]) if len(sys.argv) > 2 else InMemoryDatabase()

    server = create_server(config, database)
    server.run(transport="stdio")


if __name__ == "__main__":
    main()

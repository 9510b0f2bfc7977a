"""
MCPGate - multi-server MCP session manager

Main entry point for running from a source checkout.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent / "src"))

from mcpgate.cli import cli  # noqa: E402


if __name__ == "__main__":
    cli()

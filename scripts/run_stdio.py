#!/usr/bin/env python3
"""
Run the Team Insights MCP server in STDIO mode for Claude Desktop
Uses your local Azure credentials (az login) or AZURE_DEVOPS_PAT
"""
import logging
import os
import sys

# Add the project root to Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ado_insights.server import mcp

if __name__ == "__main__":
    # stdout carries JSON-RPC, so logs go to stderr
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper(), stream=sys.stderr)
    mcp.run()

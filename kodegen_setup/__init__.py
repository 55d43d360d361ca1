"""
KODEGEN setup — bootstrap installer for the kodegen MCP server and daemon.
"""

__version__ = "0.1.0"

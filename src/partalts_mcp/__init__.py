"""Part Alternatives MCP - find substitute electronic components."""

__version__ = "0.3.0"

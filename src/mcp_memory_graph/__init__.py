"""MCP Memory Graph: a knowledge-graph memory store with multi-channel search."""

__version__ = "0.4.0"

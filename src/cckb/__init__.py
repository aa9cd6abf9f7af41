"""cckb - a markdown knowledge base built from agent sessions and source code."""

__version__ = "0.1.0"

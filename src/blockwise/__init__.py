"""Blockwise - block-addressable document editing for AI agents."""

__version__ = "0.1.0"

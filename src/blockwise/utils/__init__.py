"""Utility helpers for Blockwise."""

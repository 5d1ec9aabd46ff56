"""Nitro Porter: community platform database export to the porter format."""

__version__ = "0.1.0"

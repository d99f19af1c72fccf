"""Vulnerability and misconfiguration scanning core: types, scanners, RPC conversion and handlers."""

__version__ = "0.1.0"
"""Notary Project signing and verification of OCI artifacts, with configuration, signing keys and plugin support."""

__version__ = "0.1.0"
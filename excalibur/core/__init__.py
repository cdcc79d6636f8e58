"""
Core business logic for the asset registry.

This module is framework-agnostic - it doesn't import FastAPI or any
HTTP client. The backing store is reached only through the
VersionedFileClient protocol, so the registry logic can be tested
against the in-memory client.
"""

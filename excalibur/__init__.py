"""
Excalibur Store - registry storage engine for a community asset marketplace.

This package contains the complete application:
- core: Framework-agnostic registry logic (records, retries, uploads)
- infrastructure: External service integrations
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"

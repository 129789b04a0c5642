"""
HTTP client for relayer services.

Provides the relay callback used for gasless submission and relayer-mediated
grant file storage.
"""

from .relayer_client import HttpRelayerClient

__all__ = ["HttpRelayerClient"]

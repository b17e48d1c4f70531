"""
Storage provider adapters.

- StorachaAdapter: primary, content-addressed (w3up session)
- Web3StorageAdapter: secondary, content-addressed (stateless HTTP)
- LocalDiskAdapter: development-only local fallback
"""

from .base import ProviderAdapter
from .local import LocalDiskAdapter
from .storacha import HttpStorachaAgent, StorachaAdapter, StorachaAgent
from .web3storage import Web3StorageAdapter

__all__ = [
    "ProviderAdapter",
    "StorachaAgent",
    "HttpStorachaAgent",
    "StorachaAdapter",
    "Web3StorageAdapter",
    "LocalDiskAdapter",
]

"""
Contacts Backends

Available native contact stores.
"""

from .graphstore import GraphStoreBackend
from .rowstore import RowStoreBackend

# Registry of available backends
ADAPTERS = {
    "rowstore": RowStoreBackend,
    "graphstore": GraphStoreBackend,
}

__all__ = ["ADAPTERS", "GraphStoreBackend", "RowStoreBackend"]

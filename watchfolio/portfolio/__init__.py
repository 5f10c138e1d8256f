"""Portfolio aggregation: pure transitions plus the store that applies them."""
from . import transitions
from .store import PortfolioStore, storage_keys

__all__ = ["PortfolioStore", "storage_keys", "transitions"]

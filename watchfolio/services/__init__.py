"""Service modules"""
from .debounce import SUPERSEDED, Debouncer
from .view_model import AllocationSlice, PortfolioViewModel

__all__ = ["AllocationSlice", "Debouncer", "PortfolioViewModel", "SUPERSEDED"]

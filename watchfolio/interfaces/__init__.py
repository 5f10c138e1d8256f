"""Protocol interfaces for the portfolio core."""
from .balances import BalanceResolver
from .market_data import MarketDataSource
from .storage import KeyValueStorage
from .transport import Transport

__all__ = ["BalanceResolver", "KeyValueStorage", "MarketDataSource", "Transport"]

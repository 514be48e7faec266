from .settings import StorageSettings
from .trade_ledger import TradeLedger

__all__ = [
    "StorageSettings",
    "TradeLedger",
]

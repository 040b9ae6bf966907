from strategy_engine.ledger.trade_ledger import (
    DIRECTION_BUY,
    DIRECTION_SELL,
    STATUS_CONFIRMED,
    STATUS_FAILED,
    STATUS_PENDING,
    LedgerStats,
    TradeLedger,
    TradeRecord,
)

__all__ = [
    "DIRECTION_BUY",
    "DIRECTION_SELL",
    "LedgerStats",
    "STATUS_CONFIRMED",
    "STATUS_FAILED",
    "STATUS_PENDING",
    "TradeLedger",
    "TradeRecord",
]

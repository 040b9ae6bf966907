from strategy_engine.quotes.amounts import from_smallest_unit, to_smallest_unit
from strategy_engine.quotes.engine import Quote, QuoteEngine

__all__ = ["Quote", "QuoteEngine", "from_smallest_unit", "to_smallest_unit"]

from strategy_engine.execution.executor import ExecutionReceipt, SwapExecutor, SwapOptions, classify_error

__all__ = ["ExecutionReceipt", "SwapExecutor", "SwapOptions", "classify_error"]

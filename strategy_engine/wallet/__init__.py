from strategy_engine.wallet.manager import SignedTransaction, TransactionSigner, Wallet, WalletManager

__all__ = ["SignedTransaction", "TransactionSigner", "Wallet", "WalletManager"]

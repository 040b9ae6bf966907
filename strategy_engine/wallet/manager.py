from __future__ import annotations

import asyncio
import base64
import json
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol, Tuple

import base58
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

from strategy_engine.core.exceptions import SubmissionFailed, WalletCorrupt
from strategy_engine.tokens.registry import is_address

logger = logging.getLogger(__name__)

WALLET_WARNING = "NEVER SHARE THIS FILE. Your private key controls your funds."
SECRET_KEY_LENGTH = 64
REQUIRED_FIELDS = ("publicKey", "privateKey", "createdAt")


@dataclass(frozen=True)
class Wallet:
    public_key: str
    created_at: str
    path: Path


@dataclass(frozen=True)
class SignedTransaction:
    signature: str
    raw: bytes


class TransactionSigner(Protocol):
    @property
    def public_key(self) -> str:
        ...

    def exclusive(self) -> asyncio.Lock:
        ...

    def sign(self, swap_transaction: str) -> SignedTransaction:
        ...


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _write_private(path: Path, payload: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
    fd, tmp_name = tempfile.mkstemp(prefix=".wallet-", suffix=".tmp", dir=str(path.parent))
    try:
        os.fchmod(fd, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


class WalletManager:
    """Owns the process signing key.

    The secret is only ever held by this object. ``sign`` is the execution path;
    ``export_secret`` is the audited path used by the CLI and nothing else.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._keypair: Optional[Keypair] = None
        self._wallet: Optional[Wallet] = None
        self._lock = asyncio.Lock()

    @property
    def public_key(self) -> str:
        return self._require().public_key

    def exclusive(self) -> asyncio.Lock:
        return self._lock

    def get_or_create(self) -> Tuple[Wallet, bool]:
        if self._wallet is not None:
            return self._wallet, False
        if self.path.exists():
            self._load()
            logger.info("loaded wallet %s from %s", self._wallet.public_key, self.path)
            return self._wallet, False
        self._generate()
        logger.info("generated wallet %s at %s", self._wallet.public_key, self.path)
        return self._wallet, True

    def sign(self, swap_transaction: str) -> SignedTransaction:
        keypair = self._require_keypair()
        try:
            unsigned = VersionedTransaction.from_bytes(base64.b64decode(swap_transaction))
        except Exception as exc:
            raise SubmissionFailed(f"Swap transaction could not be decoded: {exc}") from exc
        try:
            signed = VersionedTransaction(unsigned.message, [keypair])
        except Exception as exc:
            # raised when the wallet is not a required signer of the message
            raise SubmissionFailed(f"Swap transaction could not be signed: {exc}") from exc
        return SignedTransaction(signature=str(signed.signatures[0]), raw=bytes(signed))

    def export_secret(self, reason: str) -> str:
        if not reason or not reason.strip():
            raise ValueError("an export reason is required")
        keypair = self._require_keypair()
        logger.warning("wallet secret exported for %s (reason: %s)", self.public_key, reason.strip())
        return base58.b58encode(bytes(keypair)).decode("ascii")

    def _require(self) -> Wallet:
        if self._wallet is None:
            self.get_or_create()
        return self._wallet

    def _require_keypair(self) -> Keypair:
        self._require()
        return self._keypair

    def _generate(self) -> None:
        keypair = Keypair()
        public_key = str(keypair.pubkey())
        created_at = _utc_now_iso()
        _write_private(
            self.path,
            {
                "publicKey": public_key,
                "privateKey": base58.b58encode(bytes(keypair)).decode("ascii"),
                "createdAt": created_at,
                "warning": WALLET_WARNING,
            },
        )
        self._keypair = keypair
        self._wallet = Wallet(public_key=public_key, created_at=created_at, path=self.path)

    def _load(self) -> None:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise WalletCorrupt(f"Wallet file {self.path} is unreadable") from exc
        if not isinstance(data, dict):
            raise WalletCorrupt(f"Wallet file {self.path} is not a JSON object")
        missing = [name for name in REQUIRED_FIELDS if not data.get(name)]
        if missing:
            raise WalletCorrupt(f"Wallet file {self.path} is missing {', '.join(missing)}")
        public_key = str(data["publicKey"])
        if not is_address(public_key):
            raise WalletCorrupt(f"Wallet file {self.path} has an invalid public key")
        try:
            secret = base58.b58decode(str(data["privateKey"]))
        except ValueError as exc:
            raise WalletCorrupt(f"Wallet file {self.path} has an undecodable secret") from exc
        if len(secret) != SECRET_KEY_LENGTH:
            raise WalletCorrupt(f"Wallet file {self.path} secret must decode to {SECRET_KEY_LENGTH} bytes")
        try:
            keypair = Keypair.from_bytes(secret)
        except Exception as exc:
            raise WalletCorrupt(f"Wallet file {self.path} secret is not a valid keypair") from exc
        if str(keypair.pubkey()) != public_key:
            raise WalletCorrupt(f"Wallet file {self.path} public key does not match its secret")
        self._keypair = keypair
        self._wallet = Wallet(public_key=public_key, created_at=str(data["createdAt"]), path=self.path)


__all__ = ["SignedTransaction", "TransactionSigner", "Wallet", "WalletManager"]

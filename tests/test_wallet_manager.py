import json
import os
import stat
from pathlib import Path

import base58
import pytest
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

from strategy_engine.core.exceptions import SubmissionFailed, WalletCorrupt
from strategy_engine.data.jupiter.provider import build_offline_swap_transaction
from strategy_engine.wallet.manager import WalletManager


def test_absent_wallet_is_created_once(tmp_path: Path):
    path = tmp_path / "keys" / "wallet.json"
    wallet, created = WalletManager(path).get_or_create()
    assert created is True
    assert path.exists()
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600

    again, created_again = WalletManager(path).get_or_create()
    assert created_again is False
    assert again.public_key == wallet.public_key
    assert again.created_at == wallet.created_at

    data = json.loads(path.read_text(encoding="utf-8"))
    assert set(data) >= {"publicKey", "privateKey", "createdAt", "warning"}


def test_same_manager_reuses_loaded_wallet(tmp_path: Path):
    manager = WalletManager(tmp_path / "wallet.json")
    first, _ = manager.get_or_create()
    second, created = manager.get_or_create()
    assert created is False
    assert first is second


@pytest.mark.parametrize(
    "content",
    [
        "not json",
        "[]",
        json.dumps({"publicKey": "abc"}),
        json.dumps({"publicKey": str(Keypair().pubkey()), "privateKey": "short", "createdAt": "now"}),
    ],
)
def test_corrupt_wallet_is_never_replaced(tmp_path: Path, content: str):
    path = tmp_path / "wallet.json"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(WalletCorrupt):
        WalletManager(path).get_or_create()
    assert path.read_text(encoding="utf-8") == content


def test_mismatched_public_key_is_corrupt(tmp_path: Path):
    path = tmp_path / "wallet.json"
    path.write_text(
        json.dumps(
            {
                "publicKey": str(Keypair().pubkey()),
                "privateKey": base58.b58encode(bytes(Keypair())).decode("ascii"),
                "createdAt": "2025-01-01T00:00:00+00:00",
            }
        ),
        encoding="utf-8",
    )
    with pytest.raises(WalletCorrupt):
        WalletManager(path).get_or_create()


def test_sign_produces_wallet_signature(tmp_path: Path):
    manager = WalletManager(tmp_path / "wallet.json")
    wallet, _ = manager.get_or_create()
    unsigned = build_offline_swap_transaction(wallet.public_key, b"seed")
    signed = manager.sign(unsigned)
    tx = VersionedTransaction.from_bytes(signed.raw)
    assert str(tx.signatures[0]) == signed.signature
    assert tx.verify_with_results() == [True]


def test_sign_rejects_foreign_or_garbage_transactions(tmp_path: Path):
    manager = WalletManager(tmp_path / "wallet.json")
    manager.get_or_create()
    with pytest.raises(SubmissionFailed):
        manager.sign("!!not base64!!")
    with pytest.raises(SubmissionFailed):
        manager.sign(build_offline_swap_transaction(str(Keypair().pubkey()), b"seed"))


def test_export_requires_reason(tmp_path: Path):
    manager = WalletManager(tmp_path / "wallet.json")
    wallet, _ = manager.get_or_create()
    with pytest.raises(ValueError):
        manager.export_secret("  ")
    secret = manager.export_secret("backup")
    assert str(Keypair.from_bytes(base58.b58decode(secret)).pubkey()) == wallet.public_key

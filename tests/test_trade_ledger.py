import io
from decimal import Decimal
from pathlib import Path

import pytest
from rich.console import Console

from strategy_engine.core.exceptions import InvalidStateTransition, NotFound
from strategy_engine.ledger.trade_ledger import (
    DIRECTION_BUY,
    DIRECTION_SELL,
    STATUS_CONFIRMED,
    STATUS_FAILED,
    STATUS_PENDING,
    TradeLedger,
    TradeRecord,
    direction_for,
)

SOL = "So11111111111111111111111111111111111111112"
USDC = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
JUP = "JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN"


def _buy(amount: str, price: float, signature: str, status: str = STATUS_CONFIRMED, **kwargs) -> TradeRecord:
    return TradeRecord(
        owner="local",
        signature=signature,
        direction=DIRECTION_BUY,
        input_mint=SOL,
        output_mint=JUP,
        input_amount=Decimal("1"),
        output_amount=Decimal(amount),
        price_usd=price,
        status=status,
        **kwargs,
    )


def _sell(amount: str, price: float, signature: str) -> TradeRecord:
    return TradeRecord(
        owner="local",
        signature=signature,
        direction=DIRECTION_SELL,
        input_mint=JUP,
        output_mint=USDC,
        input_amount=Decimal(amount),
        output_amount=Decimal(amount) * Decimal(str(price)),
        price_usd=price,
        status=STATUS_CONFIRMED,
    )


def test_direction_from_input_mint():
    assert direction_for(SOL) == DIRECTION_BUY
    assert direction_for(USDC) == DIRECTION_BUY
    assert direction_for(JUP) == DIRECTION_SELL


def test_realized_pnl_uses_average_cost():
    ledger = TradeLedger()
    ledger.record(_buy("10", 1.0, "sig-1"))
    ledger.record(_buy("10", 2.0, "sig-2"))
    assert ledger.position("local", JUP).avg_cost == Decimal("1.5")

    sell = ledger.record(_sell("10", 3.0, "sig-3"))
    assert sell.pnl_usd == pytest.approx(15.0)
    assert ledger.position("local", JUP).quantity == Decimal("10")

    stats = ledger.stats("local")
    assert stats.total_trades == 3
    assert stats.confirmed_trades == 3
    assert stats.realized_trades == 1
    assert stats.winning_trades == 1
    assert stats.total_pnl_usd == pytest.approx(15.0)
    assert stats.win_rate == 1.0


def test_losing_sell_counts_against_win_rate():
    ledger = TradeLedger()
    ledger.record(_buy("10", 2.0, "sig-1"))
    ledger.record(_sell("5", 1.0, "sig-2"))
    ledger.record(_sell("5", 3.0, "sig-3"))
    stats = ledger.stats("local")
    assert stats.realized_trades == 2
    assert stats.winning_trades == 1
    assert stats.win_rate == 0.5
    assert stats.total_pnl_usd == pytest.approx(0.0)


def test_signature_dedupe():
    ledger = TradeLedger()
    first = ledger.record(_buy("10", 1.0, "sig-1"))
    second = ledger.record(_buy("10", 1.0, "sig-1"))
    assert second.id == first.id
    assert len(ledger.list_by_owner("local")) == 1
    assert ledger.position("local", JUP).quantity == Decimal("10")


def test_settle_pending_trade_once():
    clock = iter([100.0, 200.0, 300.0])
    ledger = TradeLedger(clock=lambda: next(clock))
    pending = ledger.record(_buy("10", 1.0, "sig-1", status=STATUS_PENDING))
    assert pending.closed_at is None
    assert ledger.pending("local") == [pending]

    settled = ledger.settle("sig-1", STATUS_CONFIRMED)
    assert settled.id == pending.id
    assert settled.status == STATUS_CONFIRMED
    assert settled.closed_at == 100.0
    assert ledger.pending() == []
    assert ledger.position("local", JUP).quantity == Decimal("10")

    with pytest.raises(InvalidStateTransition):
        ledger.settle("sig-1", STATUS_FAILED)
    with pytest.raises(NotFound):
        ledger.settle("missing", STATUS_FAILED)
    with pytest.raises(ValueError):
        ledger.settle("sig-1", STATUS_PENDING)


def test_replay_keeps_newest_state(tmp_path: Path):
    path = tmp_path / "trades.jsonl"
    ledger = TradeLedger(path)
    ledger.record(_buy("10", 1.0, "sig-1", status=STATUS_PENDING))
    ledger.settle("sig-1", STATUS_CONFIRMED)
    ledger.record(_buy("4", 1.0, "sig-2", status=STATUS_FAILED, reason="SlippageExceeded"))
    ledger.close()
    with path.open("a", encoding="utf-8") as handle:
        handle.write("{not json\n")

    reopened = TradeLedger(path)
    assert reopened.get_by_signature("sig-1").status == STATUS_CONFIRMED
    assert reopened.get_by_signature("sig-2").reason == "SlippageExceeded"
    assert reopened.position("local", JUP).quantity == Decimal("10")
    assert reopened.status_counts() == {STATUS_CONFIRMED: 1, STATUS_FAILED: 1}
    reopened.close()


def test_bought_mints_include_pending_but_not_failed():
    ledger = TradeLedger()
    ledger.record(_buy("1", 1.0, "sig-1", status=STATUS_PENDING))
    failed = _buy("1", 1.0, "sig-2", status=STATUS_FAILED).model_copy(update={"output_mint": USDC})
    ledger.record(failed)
    assert ledger.bought_mints("local") == {JUP}
    assert ledger.bought_mints("someone-else") == set()


def test_list_by_owner_filters_and_orders():
    ledger = TradeLedger()
    older = ledger.record(_buy("1", 1.0, "sig-1", created_at=100.0, strategy_id="a"))
    newer = ledger.record(_buy("1", 1.0, "sig-2", created_at=200.0, strategy_id="b"))
    assert ledger.list_by_owner("local") == [newer, older]
    assert ledger.list_by_owner("local", since=150.0) == [newer]
    assert ledger.list_by_owner("local", until=150.0) == [older]
    assert ledger.list_by_owner("local", strategy_id="a") == [older]


def test_trades_today_counts_utc_day():
    now = 1_735_776_000.0 + 3600
    ledger = TradeLedger(clock=lambda: now)
    ledger.record(_buy("1", 1.0, "sig-1", created_at=now - 60, strategy_id="a"))
    ledger.record(_buy("1", 1.0, "sig-2", created_at=now - 2 * 86400, strategy_id="a"))
    assert ledger.trades_today("local") == 1
    assert ledger.trades_today("local", strategy_id="b") == 0


def test_get_unknown_trade():
    with pytest.raises(NotFound):
        TradeLedger().get("nope")


def test_summary_table():
    ledger = TradeLedger()
    ledger.record(_buy("1", 1.0, "sig-1"))
    buffer = io.StringIO()
    ledger.summarize("local", console=Console(file=buffer, width=100))
    output = buffer.getvalue()
    assert "Trade Ledger Summary" in output
    assert "CONFIRMED" in output

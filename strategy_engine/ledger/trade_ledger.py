from __future__ import annotations

import json
import logging
import time
import uuid
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set, Tuple

from pydantic import BaseModel, Field
from rich.console import Console
from rich.table import Table

from strategy_engine.core.exceptions import InvalidStateTransition, NotFound
from strategy_engine.tokens.registry import SOL_MINT, TOKEN_MINTS

logger = logging.getLogger(__name__)

STATUS_PENDING = "PENDING"
STATUS_CONFIRMED = "CONFIRMED"
STATUS_FAILED = "FAILED"
FINAL_STATUSES = (STATUS_CONFIRMED, STATUS_FAILED)

DIRECTION_BUY = "BUY"
DIRECTION_SELL = "SELL"

TRADE_TYPE_SPOT = "SPOT"

# spending one of these counts as buying the other side
QUOTE_MINTS = frozenset({SOL_MINT, TOKEN_MINTS["USDC"], TOKEN_MINTS["USDT"]})


class TradeRecord(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    owner: str
    strategy_id: Optional[str] = None
    signature: Optional[str] = None
    type: str = TRADE_TYPE_SPOT
    direction: str = DIRECTION_BUY
    input_mint: str
    output_mint: str
    input_symbol: Optional[str] = None
    output_symbol: Optional[str] = None
    input_amount: Decimal = Decimal(0)
    output_amount: Decimal = Decimal(0)
    price_usd: Optional[float] = None
    pnl_usd: Optional[float] = None
    status: str = STATUS_PENDING
    reason: Optional[str] = None
    created_at: float = Field(default_factory=time.time)
    closed_at: Optional[float] = None

    @property
    def position_mint(self) -> str:
        return self.output_mint if self.direction == DIRECTION_BUY else self.input_mint

    @property
    def is_final(self) -> bool:
        return self.status in FINAL_STATUSES


class LedgerStats(BaseModel):
    owner: str
    strategy_id: Optional[str] = None
    total_trades: int = 0
    confirmed_trades: int = 0
    failed_trades: int = 0
    pending_trades: int = 0
    realized_trades: int = 0
    winning_trades: int = 0
    total_pnl_usd: float = 0.0
    win_rate: float = 0.0


@dataclass
class Position:
    quantity: Decimal = Decimal(0)
    cost_usd: Decimal = Decimal(0)

    @property
    def avg_cost(self) -> Decimal:
        if self.quantity <= 0:
            return Decimal(0)
        return self.cost_usd / self.quantity


def direction_for(input_mint: str) -> str:
    return DIRECTION_BUY if input_mint in QUOTE_MINTS else DIRECTION_SELL


def _utc_day_start(now: float) -> float:
    day = datetime.fromtimestamp(now, tz=timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    return day.timestamp()


class TradeLedger:
    """Append-only trade journal. Each state change is a JSONL line; the newest line per id wins on replay."""

    def __init__(self, path: Optional[Path] = None, clock: Callable[[], float] = time.time) -> None:
        self.path = Path(path) if path else None
        self._clock = clock
        self._records: Dict[str, TradeRecord] = {}
        self._by_signature: Dict[str, str] = {}
        self._positions: Dict[Tuple[str, str], Position] = {}
        self._file = None
        if self.path is not None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._replay()
            self._file = self.path.open("a", encoding="utf-8")

    def _replay(self) -> None:
        if self.path is None or not self.path.exists():
            return
        with self.path.open("r", encoding="utf-8") as handle:
            for line_no, line in enumerate(handle, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    record = TradeRecord.model_validate(json.loads(line))
                except ValueError as exc:
                    logger.warning("skipping unreadable ledger line %s in %s: %s", line_no, self.path, exc)
                    continue
                previous = self._records.get(record.id)
                self._index(record)
                became_confirmed = record.status == STATUS_CONFIRMED and (
                    previous is None or previous.status != STATUS_CONFIRMED
                )
                if became_confirmed:
                    self._apply_position(record)
        logger.info("replayed %d trades from %s", len(self._records), self.path)

    def _index(self, record: TradeRecord) -> None:
        self._records[record.id] = record
        if record.signature:
            self._by_signature[record.signature] = record.id

    def _write(self, record: TradeRecord) -> None:
        if self._file is None:
            return
        self._file.write(json.dumps(record.model_dump(mode="json")) + "\n")
        self._file.flush()

    def _apply_position(self, record: TradeRecord) -> Optional[float]:
        """Update the (owner, mint) position; returns realized PnL for sells."""
        key = (record.owner, record.position_mint)
        position = self._positions.setdefault(key, Position())
        price = Decimal(str(record.price_usd)) if record.price_usd is not None else None
        if record.direction == DIRECTION_BUY:
            position.quantity += record.output_amount
            if price is not None:
                position.cost_usd += record.output_amount * price
            return None

        sold = min(record.input_amount, position.quantity)
        avg_cost = position.avg_cost
        position.quantity -= sold
        position.cost_usd -= avg_cost * sold
        if position.quantity <= 0:
            position.quantity = Decimal(0)
            position.cost_usd = Decimal(0)
        if price is None or sold <= 0:
            return None
        return float(sold * price - avg_cost * sold)

    def get(self, trade_id: str) -> TradeRecord:
        record = self._records.get(trade_id)
        if record is None:
            raise NotFound(f"Trade not found: {trade_id}")
        return record

    def get_by_signature(self, signature: str) -> Optional[TradeRecord]:
        trade_id = self._by_signature.get(signature)
        return self._records.get(trade_id) if trade_id else None

    def record(self, trade: TradeRecord) -> TradeRecord:
        if trade.signature:
            existing = self.get_by_signature(trade.signature)
            if existing is not None:
                logger.info("trade %s already recorded as %s", trade.signature, existing.id)
                return existing
        if trade.id in self._records:
            return self._records[trade.id]

        updates: Dict[str, object] = {}
        if trade.is_final and trade.closed_at is None:
            updates["closed_at"] = self._clock()
        if trade.status == STATUS_CONFIRMED:
            updates["pnl_usd"] = self._apply_position(trade)
        stored = trade.model_copy(update=updates) if updates else trade
        self._index(stored)
        self._write(stored)
        return stored

    def settle(
        self,
        signature: str,
        status: str,
        reason: Optional[str] = None,
        output_amount: Optional[Decimal] = None,
    ) -> TradeRecord:
        if status not in FINAL_STATUSES:
            raise ValueError(f"Cannot settle a trade as {status}")
        record = self.get_by_signature(signature)
        if record is None:
            raise NotFound(f"No trade recorded for signature {signature}")
        if record.is_final:
            raise InvalidStateTransition(f"Trade {record.id} is already {record.status}")

        updates: Dict[str, object] = {"status": status, "closed_at": self._clock()}
        if reason is not None:
            updates["reason"] = reason
        if output_amount is not None:
            updates["output_amount"] = output_amount
        settled = record.model_copy(update=updates)
        if status == STATUS_CONFIRMED:
            settled = settled.model_copy(update={"pnl_usd": self._apply_position(settled)})
        self._index(settled)
        self._write(settled)
        return settled

    def pending(self, owner: Optional[str] = None) -> List[TradeRecord]:
        return [
            record
            for record in self._sorted()
            if record.status == STATUS_PENDING and (owner is None or record.owner == owner)
        ]

    def _sorted(self) -> List[TradeRecord]:
        return sorted(self._records.values(), key=lambda r: r.created_at, reverse=True)

    def list_by_owner(
        self,
        owner: str,
        since: Optional[float] = None,
        until: Optional[float] = None,
        strategy_id: Optional[str] = None,
    ) -> List[TradeRecord]:
        results = []
        for record in self._sorted():
            if record.owner != owner:
                continue
            if strategy_id is not None and record.strategy_id != strategy_id:
                continue
            if since is not None and record.created_at < since:
                continue
            if until is not None and record.created_at > until:
                continue
            results.append(record)
        return results

    def bought_mints(self, owner: str, since: Optional[float] = None) -> Set[str]:
        # pending buys count so a slow confirmation does not trigger a second buy
        return {
            record.output_mint
            for record in self.list_by_owner(owner, since=since)
            if record.direction == DIRECTION_BUY and record.status in (STATUS_CONFIRMED, STATUS_PENDING)
        }

    def trades_today(self, owner: str, strategy_id: Optional[str] = None) -> int:
        since = _utc_day_start(self._clock())
        return len(self.list_by_owner(owner, since=since, strategy_id=strategy_id))

    def position(self, owner: str, mint: str) -> Position:
        return self._positions.get((owner, mint), Position())

    def stats(self, owner: str, strategy_id: Optional[str] = None) -> LedgerStats:
        records = self.list_by_owner(owner, strategy_id=strategy_id)
        stats = LedgerStats(owner=owner, strategy_id=strategy_id, total_trades=len(records))
        pnl_total = 0.0
        for record in records:
            if record.status == STATUS_CONFIRMED:
                stats.confirmed_trades += 1
                if record.pnl_usd is not None:
                    stats.realized_trades += 1
                    pnl_total += record.pnl_usd
                    if record.pnl_usd > 0:
                        stats.winning_trades += 1
            elif record.status == STATUS_FAILED:
                stats.failed_trades += 1
            else:
                stats.pending_trades += 1
        stats.total_pnl_usd = round(pnl_total, 6)
        if stats.realized_trades:
            stats.win_rate = stats.winning_trades / stats.realized_trades
        return stats

    def status_counts(self, owner: Optional[str] = None) -> Dict[str, int]:
        return dict(
            Counter(record.status for record in self._records.values() if owner is None or record.owner == owner)
        )

    def summarize(self, owner: Optional[str] = None, console: Optional[Console] = None) -> None:
        counts = self.status_counts(owner)
        table = Table(title="Trade Ledger Summary")
        table.add_column("Status")
        table.add_column("Count", justify="right")
        for status, count in Counter(counts).most_common():
            table.add_row(str(status), str(count))
        owners = [owner] if owner else sorted({record.owner for record in self._records.values()})
        pnl = sum(self.stats(name).total_pnl_usd for name in owners)
        table.add_row("Realized PnL (USD)", f"{pnl:.2f}")
        (console or Console()).print(table)

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None


__all__ = [
    "DIRECTION_BUY",
    "DIRECTION_SELL",
    "LedgerStats",
    "Position",
    "STATUS_CONFIRMED",
    "STATUS_FAILED",
    "STATUS_PENDING",
    "TRADE_TYPE_SPOT",
    "TradeLedger",
    "TradeRecord",
    "direction_for",
]

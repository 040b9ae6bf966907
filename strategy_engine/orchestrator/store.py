from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import TypeAdapter, ValidationError

from strategy_engine.core.exceptions import StrategyNotFound
from strategy_engine.strategies.models import Strategy

logger = logging.getLogger(__name__)

_STRATEGY_LIST = TypeAdapter(List[Strategy])


class StrategyStore:
    """Strategies keyed by id. Persists to a JSON file when ``path`` is set, otherwise memory only."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path) if path else None
        self._strategies: Dict[str, Strategy] = {}
        if self.path is not None and self.path.exists():
            self._load()

    def _load(self) -> None:
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8") or "[]")
            strategies = _STRATEGY_LIST.validate_python(raw)
        except (OSError, ValueError, ValidationError) as exc:
            raise RuntimeError(f"Strategy store {self.path} is unreadable: {exc}") from exc
        self._strategies = {strategy.id: strategy for strategy in strategies}
        logger.info("loaded %d strategies from %s", len(self._strategies), self.path)

    def _flush(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = _STRATEGY_LIST.dump_json(list(self._strategies.values()), indent=2)
        fd, tmp = tempfile.mkstemp(dir=str(self.path.parent), prefix=".strategies-", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(payload)
            os.replace(tmp, self.path)
        except OSError:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def create(self, strategy: Strategy) -> Strategy:
        if strategy.id in self._strategies:
            raise ValueError(f"Strategy {strategy.id} already exists")
        self._strategies[strategy.id] = strategy
        self._flush()
        return strategy

    def save(self, strategy: Strategy) -> Strategy:
        if strategy.id not in self._strategies:
            raise StrategyNotFound(f"Strategy not found: {strategy.id}")
        self._strategies[strategy.id] = strategy
        self._flush()
        return strategy

    def get(self, strategy_id: str, owner: Optional[str] = None) -> Strategy:
        strategy = self._strategies.get(strategy_id)
        if strategy is None or (owner is not None and strategy.owner != owner):
            raise StrategyNotFound(f"Strategy not found: {strategy_id}")
        return strategy

    def list_by_owner(self, owner: str) -> List[Strategy]:
        owned = [strategy for strategy in self._strategies.values() if strategy.owner == owner]
        return sorted(owned, key=lambda s: s.created_at, reverse=True)

    def list_active(self, owner: Optional[str] = None) -> List[Strategy]:
        active = [
            strategy
            for strategy in self._strategies.values()
            if strategy.is_active and (owner is None or strategy.owner == owner)
        ]
        return sorted(active, key=lambda s: s.created_at)

    def set_active(self, strategy_id: str, active: bool) -> Strategy:
        strategy = self.get(strategy_id)
        return self.save(strategy.model_copy(update={"is_active": active}))


__all__ = ["StrategyStore"]

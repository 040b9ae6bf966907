from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional, Type, TypeVar

from pydantic import BaseModel

from strategy_engine.config import repo_root

T = TypeVar("T", bound=BaseModel)


def fixture_dir(upstream: str) -> Path:
    return repo_root() / "tests" / "fixtures" / upstream


def load_json_fixture(path: Path) -> Any:
    if not path.exists():
        raise FileNotFoundError(f"Fixture not found: {path}")
    return json.loads(path.read_text(encoding="utf-8"))


def load_fixture(base_dir: Path, name: str) -> Any:
    return load_json_fixture(base_dir / name)


def load_model_fixture(model: Type[T], base_dir: Path, name: str, key: Optional[str] = None) -> T:
    payload = load_fixture(base_dir, name)
    if key is not None:
        payload = payload[key]
    return model.model_validate(payload)


__all__ = ["fixture_dir", "load_fixture", "load_json_fixture", "load_model_fixture"]

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urlencode

MASK = "***"
SECRET_HEADERS = frozenset({"x-api-key", "authorization"})
SECRET_QUERY = frozenset({"api-key", "api_key"})


def canonicalize_query(query: Dict[str, Any]) -> Dict[str, str]:
    """Stringify query values the way they go on the wire; ``None`` entries are dropped."""
    out: Dict[str, str] = {}
    for key, value in query.items():
        if value is None:
            continue
        out[key] = str(value).lower() if isinstance(value, bool) else str(value)
    return out


def _masked(mapping: Dict[str, Any], secrets: Iterable[str]) -> Dict[str, Any]:
    lowered = {name.lower() for name in secrets}
    return {key: MASK if value and key.lower() in lowered else value for key, value in mapping.items()}


def _encode(query: Dict[str, Any]) -> str:
    return urlencode(sorted(query.items()))


@dataclass(frozen=True)
class RequestSpec:
    method: str
    base_url: str
    path: str
    query: Dict[str, Any]
    headers: Dict[str, str]
    json: Optional[Any] = None

    def url(self) -> str:
        path = self.path or "/"
        if not path.startswith("/"):
            path = "/" + path
        return self.base_url.rstrip("/") + path

    def normalized_query(self) -> Dict[str, str]:
        return canonicalize_query(self.query)

    def fingerprint(self, required_headers: Optional[Iterable[str]] = None) -> str:
        """Shape of the request without values, for contract tests."""
        headers = sorted(name.lower() for name in (required_headers or self.headers))
        params = sorted(self.normalized_query())
        return f"{self.method} {self.url()} q={','.join(params)} h={','.join(headers)}"

    def describe(self) -> str:
        encoded = _encode(_masked(self.normalized_query(), SECRET_QUERY))
        return f"{self.method} {self.url()}?{encoded}" if encoded else f"{self.method} {self.url()}"

    def to_curl(self) -> str:
        encoded = _encode(_masked(self.normalized_query(), SECRET_QUERY))
        target = f"{self.url()}?{encoded}" if encoded else self.url()
        parts: List[str] = ["curl", "-X", self.method, f"'{target}'"]
        parts.extend(f"-H '{name}: {value}'" for name, value in sorted(_masked(self.headers, SECRET_HEADERS).items()))
        if self.json is not None:
            parts.append("-d '%s'" % json.dumps(self.json, separators=(",", ":"), sort_keys=True))
        return " ".join(parts)


@dataclass(frozen=True)
class JsonRpcSpec:
    """A JSON-RPC 2.0 call; posted to ``base_url + path`` by the HTTP client."""

    base_url: str
    method: str
    params: list = field(default_factory=list)
    request_id: int = 1
    path: str = "/"
    query: Dict[str, Any] = field(default_factory=dict)

    @property
    def body(self) -> Dict[str, Any]:
        return {"jsonrpc": "2.0", "id": self.request_id, "method": self.method, "params": self.params}

    def to_request_spec(self) -> RequestSpec:
        return RequestSpec(
            method="POST",
            base_url=self.base_url,
            path=self.path,
            query=dict(self.query),
            headers={"Content-Type": "application/json"},
            json=self.body,
        )


__all__ = ["JsonRpcSpec", "RequestSpec", "canonicalize_query"]

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RpcErrorBody(BaseModel):
    code: Optional[int] = None
    message: str = ""
    data: Optional[Any] = None

    model_config = ConfigDict(extra="allow")

    def logs(self) -> List[str]:
        if isinstance(self.data, dict):
            return [str(line) for line in self.data.get("logs") or []]
        return []


class RpcResponse(BaseModel):
    jsonrpc: str = "2.0"
    id: Optional[int] = None
    result: Any = None
    error: Optional[RpcErrorBody] = None

    model_config = ConfigDict(extra="allow")


class SignatureStatus(BaseModel):
    slot: Optional[int] = None
    confirmations: Optional[int] = None
    err: Optional[Any] = None
    confirmation_status: Optional[str] = Field(default=None, alias="confirmationStatus")

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @property
    def settled(self) -> bool:
        return self.confirmation_status in {"confirmed", "finalized"}


class SignatureStatusesResult(BaseModel):
    value: List[Optional[SignatureStatus]] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")


__all__ = ["RpcErrorBody", "RpcResponse", "SignatureStatus", "SignatureStatusesResult"]

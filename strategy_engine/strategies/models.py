from __future__ import annotations

import time
import uuid
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, model_validator

from strategy_engine.core.exceptions import InvalidStrategyConfig

STRATEGY_SPOT = "SPOT"
STRATEGY_SNIPER = "SNIPER"
STRATEGY_CONDITIONAL = "CONDITIONAL"

TIMEFRAMES = ("1m", "5m", "15m", "1H", "4H", "1D")
Timeframe = Literal["1m", "5m", "15m", "1H", "4H", "1D"]
Indicator = Literal["EMA", "RSI", "SMA", "PRICE"]
Trigger = Literal["price_above", "price_below", "price_touches", "crosses_above", "crosses_below"]
Direction = Literal["buy", "sell"]

DEFAULT_PERIODS: Dict[str, int] = {"EMA": 20, "SMA": 20, "RSI": 14, "PRICE": 1}
MIN_SLIPPAGE_BPS = 1
MAX_SLIPPAGE_BPS = 5000


class _ConfigModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class Condition(_ConfigModel):
    indicator: Indicator
    trigger: Trigger
    period: Optional[int] = Field(default=None, gt=0, le=500)
    timeframe: Timeframe = "1H"
    value: Optional[float] = None

    @model_validator(mode="after")
    def _requires_reference(self) -> "Condition":
        if self.indicator in ("RSI", "PRICE") and self.value is None:
            raise ValueError(f"{self.indicator} conditions require a value")
        if self.indicator == "RSI" and not 0 <= float(self.value) <= 100:
            raise ValueError("RSI value must be between 0 and 100")
        return self

    @property
    def effective_period(self) -> int:
        return self.period or DEFAULT_PERIODS[self.indicator]

    def describe(self) -> str:
        label = self.indicator
        if self.indicator != "PRICE":
            label = f"{label}({self.effective_period})"
        if self.value is not None:
            return f"{self.trigger} {label} {self.value:g}"
        return f"{self.trigger} {label}"


class SpotConfig(_ConfigModel):
    type: Literal["SPOT"] = STRATEGY_SPOT
    input_token: str = Field(validation_alias=AliasChoices("input_token", "inputToken"), min_length=1)
    output_token: str = Field(validation_alias=AliasChoices("output_token", "outputToken"), min_length=1)
    amount: float = Field(gt=0)
    slippage_bps: int = Field(
        default=100,
        ge=MIN_SLIPPAGE_BPS,
        le=MAX_SLIPPAGE_BPS,
        validation_alias=AliasChoices("slippage_bps", "slippageBps"),
    )


class SniperConfig(_ConfigModel):
    type: Literal["SNIPER"] = STRATEGY_SNIPER
    max_age_minutes: Optional[float] = Field(
        default=None, gt=0, validation_alias=AliasChoices("max_age_minutes", "maxAgeMinutes")
    )
    min_liquidity: Optional[float] = Field(
        default=None, ge=0, validation_alias=AliasChoices("min_liquidity", "minLiquidity")
    )
    max_liquidity: Optional[float] = Field(
        default=None, ge=0, validation_alias=AliasChoices("max_liquidity", "maxLiquidity")
    )
    min_volume: Optional[float] = Field(default=None, ge=0, validation_alias=AliasChoices("min_volume", "minVolume"))
    min_market_cap: Optional[float] = Field(
        default=None, ge=0, validation_alias=AliasChoices("min_market_cap", "minMarketCap")
    )
    max_market_cap: Optional[float] = Field(
        default=None, ge=0, validation_alias=AliasChoices("max_market_cap", "maxMarketCap")
    )
    name_filter: Optional[str] = Field(default=None, validation_alias=AliasChoices("name_filter", "nameFilter"))
    amount: float = Field(default=0.01, gt=0)
    slippage_bps: int = Field(
        default=300,
        ge=MIN_SLIPPAGE_BPS,
        le=MAX_SLIPPAGE_BPS,
        validation_alias=AliasChoices("slippage_bps", "slippageBps"),
    )

    @model_validator(mode="after")
    def _bounds_ordered(self) -> "SniperConfig":
        pairs = (
            ("liquidity", self.min_liquidity, self.max_liquidity),
            ("market cap", self.min_market_cap, self.max_market_cap),
        )
        for label, low, high in pairs:
            if low is not None and high is not None and low > high:
                raise ValueError(f"min {label} exceeds max {label}")
        return self


class ConditionalConfig(_ConfigModel):
    type: Literal["CONDITIONAL"] = STRATEGY_CONDITIONAL
    token: str = Field(validation_alias=AliasChoices("token", "inputToken", "input_token"), min_length=1)
    condition: Condition
    direction: Direction = "buy"
    amount: float = Field(default=0.1, gt=0)
    slippage_bps: int = Field(
        default=100,
        ge=MIN_SLIPPAGE_BPS,
        le=MAX_SLIPPAGE_BPS,
        validation_alias=AliasChoices("slippage_bps", "slippageBps"),
    )
    candles: int = Field(default=100, ge=2, le=1000)


StrategyConfig = Annotated[Union[SpotConfig, SniperConfig, ConditionalConfig], Field(discriminator="type")]


class CreateStrategyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    owner: str = Field(default="local", min_length=1)
    name: str = Field(min_length=1, max_length=100)
    description: str = Field(min_length=1, max_length=1000)
    config: StrategyConfig


class Strategy(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    owner: str
    name: str
    description: str
    config: StrategyConfig
    is_active: bool = False
    last_fired_at: Optional[float] = None
    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)

    @property
    def type(self) -> str:
        return self.config.type


def _clean_errors(exc: ValidationError) -> List[Dict[str, Any]]:
    cleaned: List[Dict[str, Any]] = []
    for err in exc.errors():
        cleaned.append(
            {
                "loc": ".".join(str(part) for part in err.get("loc", ())),
                "msg": err.get("msg", ""),
                "type": err.get("type", ""),
            }
        )
    return cleaned


def parse_create_request(payload: Dict[str, Any]) -> CreateStrategyRequest:
    try:
        return CreateStrategyRequest.model_validate(payload)
    except ValidationError as exc:
        errors = _clean_errors(exc)
        first = errors[0] if errors else {"loc": "", "msg": "invalid"}
        raise InvalidStrategyConfig(
            f"Invalid strategy: {first['loc']}: {first['msg']}" if first["loc"] else f"Invalid strategy: {first['msg']}",
            errors=errors,
        ) from exc


__all__ = [
    "Condition",
    "ConditionalConfig",
    "CreateStrategyRequest",
    "DEFAULT_PERIODS",
    "SniperConfig",
    "SpotConfig",
    "STRATEGY_CONDITIONAL",
    "STRATEGY_SNIPER",
    "STRATEGY_SPOT",
    "Strategy",
    "StrategyConfig",
    "TIMEFRAMES",
    "parse_create_request",
]

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, model_validator

from .base_types import Amount, GainError

LONG_TERM_DAYS = 365


@dataclass
class Lot:
    """Open acquisition lot; ``unit_price`` holds the error when the cost is unknown."""

    timestamp: datetime
    origin_tx_index: int
    unit_price: Decimal | GainError
    remaining: Decimal

    @property
    def known_unit_price(self) -> Decimal | None:
        return None if isinstance(self.unit_price, GainError) else self.unit_price

    def cost_base(self) -> Decimal:
        price = self.known_unit_price
        return Decimal(0) if price is None else price * self.remaining


class CapitalGain(BaseModel):
    model_config = ConfigDict(frozen=True)

    bought_at: datetime
    bought_tx_index: int
    sold_at: datetime
    sold_tx_index: int
    amount: Amount
    cost: Decimal
    proceeds: Decimal

    @model_validator(mode="after")
    def _validate(self) -> CapitalGain:
        if self.amount.quantity <= 0:
            raise ValueError("CapitalGain.amount must be > 0")
        return self

    @property
    def profit(self) -> Decimal:
        return self.proceeds - self.cost

    @property
    def holding_period(self) -> timedelta:
        return self.sold_at - self.bought_at

    def is_long_term(self, days: int = LONG_TERM_DAYS) -> bool:
        return self.holding_period > timedelta(days=days)


@dataclass
class Disposal:
    """Outcome of consuming lots for a disposal.

    ``error`` is set when the gains were computed with an unknown cost base or
    proceeds value.
    """

    gains: list[CapitalGain] = field(default_factory=list)
    error: GainError | None = None

    @property
    def net_gain(self) -> Decimal:
        return sum((gain.profit for gain in self.gains), start=Decimal(0))


@dataclass(frozen=True)
class LotSnapshot:
    asset_key: str
    timestamp: datetime
    origin_tx_index: int
    remaining: Decimal
    unit_price: Decimal | None

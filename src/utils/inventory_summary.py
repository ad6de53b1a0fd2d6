from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal

from domain.fifo import FifoLedger
from services.price_history import PriceHistory

from .formatting import format_currency, format_decimal, format_table


@dataclass
class AssetInventorySummary:
    asset_id: str
    quantity: Decimal
    cost_base: Decimal
    value: Decimal | None

    @property
    def unrealized_gain(self) -> Decimal | None:
        return None if self.value is None else self.value - self.cost_base


@dataclass
class InventorySummary:
    as_of: datetime
    assets: list[AssetInventorySummary] = field(default_factory=list)


def compute_inventory_summary(
    ledger: FifoLedger,
    *,
    price_history: PriceHistory,
    as_of: datetime | None = None,
) -> InventorySummary:
    """Open lots per asset, valued at the estimated price of ``as_of``."""
    now = as_of or datetime.now(timezone.utc)

    quantities: dict[str, Decimal] = {}
    costs: dict[str, Decimal] = {}
    for lot in ledger.holdings():
        quantities[lot.asset_key] = quantities.get(lot.asset_key, Decimal(0)) + lot.remaining
        lot_cost = Decimal(0) if lot.unit_price is None else lot.unit_price * lot.remaining
        costs[lot.asset_key] = costs.get(lot.asset_key, Decimal(0)) + lot_cost

    summaries: list[AssetInventorySummary] = []
    for asset_id, quantity in sorted(quantities.items()):
        if quantity <= 0:
            continue
        # Non-fungible tokens are keyed "token_id:SYMBOL" and have no market price.
        price = None if ":" in asset_id else price_history.estimate_price(now, asset_id)
        summaries.append(
            AssetInventorySummary(
                asset_id=asset_id,
                quantity=quantity,
                cost_base=costs[asset_id],
                value=None if price is None else quantity * price,
            )
        )

    return InventorySummary(
        as_of=now,
        assets=summaries,
    )


def render_inventory_summary(summary: InventorySummary) -> None:
    print(f"Open inventory as of {summary.as_of:%Y-%m-%d}:")
    if not summary.assets:
        print("  (empty)")
        return

    rows = [
        (
            asset.asset_id,
            format_decimal(asset.quantity),
            format_currency(asset.cost_base),
            "n/a" if asset.value is None else format_currency(asset.value),
            "n/a" if asset.unrealized_gain is None else format_currency(asset.unrealized_gain),
        )
        for asset in summary.assets
    ]
    print("\n".join(format_table(("Asset", "Quantity", "Cost base", "Value", "Unrealized"), rows)))


__all__ = ["AssetInventorySummary", "InventorySummary", "compute_inventory_summary", "render_inventory_summary"]

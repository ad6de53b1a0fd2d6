from __future__ import annotations

import logging
from collections import defaultdict, deque
from datetime import datetime
from decimal import Decimal

from config import config

from .base_types import (
    Amount,
    GainError,
    InsufficientBalance,
    InvalidFiatValue,
    InvalidSwap,
    InvalidTransactionOrder,
    MissingCostBase,
    MissingFiatValue,
    asset_key,
)
from .ledger import CapitalGain, Disposal, Lot, LotSnapshot

logger = logging.getLogger(__name__)


class FifoLedger:
    """Per-asset FIFO queues of open lots.

    With ``atomic=True`` a disposal that cannot be completed leaves the lots
    untouched. By default lots consumed before an ordering or balance error
    stay consumed.
    """

    def __init__(self, *, reporting_currency: str | None = None, atomic: bool = False) -> None:
        self.reporting_currency = (reporting_currency or config().reporting_currency).upper()
        self.atomic = atomic
        self._holdings: dict[str, deque[Lot]] = defaultdict(deque)

    def acquire(self, amount: Amount, fiat_value: Amount | None, timestamp: datetime, tx_index: int) -> Decimal:
        # Zero quantities would only lead to a division by zero later on.
        if amount.quantity == 0:
            return Decimal(0)

        unit_price: Decimal | GainError
        try:
            unit_price = self._fiat_quantity(fiat_value) / amount.quantity
        except GainError as err:
            unit_price = err

        self._insert_lot(
            amount.asset_key,
            Lot(
                timestamp=timestamp,
                origin_tx_index=tx_index,
                unit_price=unit_price,
                remaining=amount.quantity,
            ),
        )
        return Decimal(0)

    def dispose(self, amount: Amount, fiat_value: Amount | None, timestamp: datetime, tx_index: int) -> Disposal:
        """Consume the oldest lots for ``amount`` and compute a gain for each of them.

        Raises InvalidTransactionOrder or InsufficientBalance. An unknown cost
        base or proceeds value does not raise; it is reported on the returned
        Disposal together with the gains computed using zero for the unknown
        side.
        """
        disposal = Disposal()
        if amount.quantity == 0:
            return disposal

        try:
            proceeds_per_unit = self._fiat_quantity(fiat_value) / amount.quantity
        except GainError as err:
            proceeds_per_unit = Decimal(0)
            disposal.error = err

        cost_base_error: GainError | None = None
        for lot, processed in self._consume(amount, timestamp):
            price = lot.known_unit_price
            if price is None:
                cost_base_error = MissingCostBase()
                cost = Decimal(0)
            else:
                cost = processed * price

            disposal.gains.append(
                CapitalGain(
                    bought_at=lot.timestamp,
                    bought_tx_index=lot.origin_tx_index,
                    sold_at=timestamp,
                    sold_tx_index=tx_index,
                    amount=Amount(quantity=processed, currency=amount.currency, token_id=amount.token_id),
                    cost=cost,
                    proceeds=processed * proceeds_per_unit,
                )
            )

        if cost_base_error is not None:
            disposal.error = cost_base_error
        return disposal

    def dispose_holdings(
        self,
        amount: Amount,
        fiat_value: Amount | None,
        timestamp: datetime,
        tx_index: int,
        *,
        capital_gains: list[CapitalGain],
    ) -> Decimal:
        """Dispose and return the net gain, appending the gains to ``capital_gains``.

        Gains computed without a cost base are dropped. Gains computed without
        a proceeds value are kept, but the error is still raised.
        """
        disposal = self.dispose(amount, fiat_value, timestamp, tx_index)
        if isinstance(disposal.error, MissingCostBase):
            raise disposal.error

        capital_gains.extend(disposal.gains)
        if disposal.error is not None:
            raise disposal.error
        return disposal.net_gain

    def swap(self, outgoing: Amount, incoming: Amount, timestamp: datetime, tx_index: int) -> Decimal:
        """Exchange ``outgoing`` for ``incoming`` without realizing a gain.

        The consumed lots are re-created for the incoming asset with their
        original acquisition time and total cost.
        """
        if outgoing.quantity == 0 and incoming.quantity == 0:
            return Decimal(0)
        if outgoing.quantity == 0 or incoming.quantity == 0:
            raise InvalidSwap()

        consumed = self._consume(outgoing, timestamp)
        assigned = Decimal(0)
        for idx, (lot, processed) in enumerate(consumed):
            # The last lot takes the remainder so the new lots add up to the incoming quantity.
            if idx == len(consumed) - 1:
                quantity = incoming.quantity - assigned
            else:
                quantity = processed * incoming.quantity / outgoing.quantity
            assigned += quantity

            unit_price = lot.unit_price
            if not isinstance(unit_price, GainError):
                unit_price = processed * unit_price / quantity
            self._insert_lot(
                incoming.asset_key,
                Lot(
                    timestamp=lot.timestamp,
                    origin_tx_index=lot.origin_tx_index,
                    unit_price=unit_price,
                    remaining=quantity,
                ),
            )

        return Decimal(0)

    def balance(self, symbol: str, token_id: str | None = None) -> Decimal:
        lots = self._holdings.get(asset_key(symbol, token_id))
        return sum((lot.remaining for lot in lots or ()), start=Decimal(0))

    def cost_base(self, symbol: str, token_id: str | None = None) -> Decimal:
        lots = self._holdings.get(asset_key(symbol, token_id))
        return sum((lot.cost_base() for lot in lots or ()), start=Decimal(0))

    def assets(self) -> list[str]:
        return sorted(key for key, lots in self._holdings.items() if lots)

    def holdings(self) -> list[LotSnapshot]:
        return [
            LotSnapshot(
                asset_key=key,
                timestamp=lot.timestamp,
                origin_tx_index=lot.origin_tx_index,
                remaining=lot.remaining,
                unit_price=lot.known_unit_price,
            )
            for key in self.assets()
            for lot in self._holdings[key]
        ]

    def _fiat_quantity(self, value: Amount | None) -> Decimal:
        if value is None:
            raise MissingFiatValue()
        if value.token_id is not None or value.symbol != self.reporting_currency:
            raise InvalidFiatValue()
        return value.quantity

    def _consume(self, amount: Amount, timestamp: datetime) -> list[tuple[Lot, Decimal]]:
        lots = self._holdings.get(amount.asset_key, deque())
        if self.atomic:
            self._check_disposable(lots, amount, timestamp)

        consumed: list[tuple[Lot, Decimal]] = []
        needed = amount.quantity
        while lots and needed > 0:
            lot = lots[0]
            if lot.timestamp > timestamp:
                raise InvalidTransactionOrder()

            processed = min(lot.remaining, needed)
            needed -= processed
            if processed == lot.remaining:
                lots.popleft()
            else:
                lot.remaining -= processed
            consumed.append((lot, processed))

        if needed > 0:
            raise _shortfall(amount, needed, timestamp)

        return consumed

    def _check_disposable(self, lots: deque[Lot], amount: Amount, timestamp: datetime) -> None:
        needed = amount.quantity
        for lot in lots:
            if needed <= 0:
                break
            if lot.timestamp > timestamp:
                raise InvalidTransactionOrder()
            needed -= min(lot.remaining, needed)

        if needed > 0:
            raise _shortfall(amount, needed, timestamp)

    def _insert_lot(self, key: str, lot: Lot) -> None:
        open_lots = self._holdings[key]
        if not open_lots or open_lots[-1].timestamp <= lot.timestamp:
            open_lots.append(lot)
            return

        insert_at = None
        for idx, existing in enumerate(open_lots):
            if existing.timestamp > lot.timestamp:
                insert_at = idx
                break

        if insert_at is None:
            open_lots.append(lot)
        else:
            open_lots.insert(insert_at, lot)


def _shortfall(amount: Amount, needed: Decimal, timestamp: datetime) -> InsufficientBalance:
    logger.warning(
        "At %s a remaining amount of %s %s was not found in the holdings",
        timestamp.isoformat(),
        needed,
        amount.currency,
    )
    return InsufficientBalance(Amount(quantity=needed, currency=amount.currency, token_id=amount.token_id))

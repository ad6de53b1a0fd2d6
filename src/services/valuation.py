from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable

from domain.base_types import Amount, Transaction

from .price_history import PriceHistory, PriceRequirements

logger = logging.getLogger(__name__)

# Leg estimates further apart than this are reported.
MAX_LEG_DEVIATION = Decimal("0.95")


def collect_price_requirements(transactions: Iterable[Transaction], price_history: PriceHistory) -> PriceRequirements:
    """Collect the prices needed to value ``transactions``.

    Transactions to or from fiat have a known value. When neither side of a
    trade is fiat, both prices are requested since their average gives a
    better estimate.
    """
    requirements = PriceRequirements(reporting_currency=price_history.reporting_currency)

    for tx in transactions:
        incoming, outgoing = tx.incoming_outgoing()
        if incoming is not None and outgoing is not None:
            # A fiat side other than the reporting currency still needs an exchange rate.
            if incoming.is_fiat(price_history.reporting_currency):
                requirements.add(incoming.currency, tx.timestamp)
            elif outgoing.is_fiat(price_history.reporting_currency):
                requirements.add(outgoing.currency, tx.timestamp)
            else:
                requirements.add(incoming.currency, tx.timestamp)
                requirements.add(outgoing.currency, tx.timestamp)
        else:
            amount = incoming or outgoing
            if amount is not None and not amount.is_fiat(price_history.reporting_currency):
                requirements.add(amount.currency, tx.timestamp)

        if tx.fee is not None and not tx.fee.is_fiat(price_history.reporting_currency):
            requirements.add(tx.fee.currency, tx.timestamp)

    return requirements


def estimate_transaction_values(transactions: Iterable[Transaction], price_history: PriceHistory) -> None:
    """Fill in ``value`` and ``fee_value`` where the import layer could not provide them."""
    for tx in transactions:
        if tx.value is None:
            tx.value = _estimate_value(tx, price_history)

        if tx.fee_value is None and tx.fee is not None:
            tx.fee_value = price_history.estimate_value(tx.timestamp, tx.fee)


def _estimate_value(tx: Transaction, price_history: PriceHistory) -> Amount | None:
    incoming, outgoing = tx.incoming_outgoing()
    if incoming is None or outgoing is None:
        amount = incoming or outgoing
        return None if amount is None else price_history.estimate_value(tx.timestamp, amount)

    if incoming.is_fiat(price_history.reporting_currency):
        return price_history.estimate_value(tx.timestamp, incoming)
    if outgoing.is_fiat(price_history.reporting_currency):
        return price_history.estimate_value(tx.timestamp, outgoing)

    value_incoming = price_history.estimate_value(tx.timestamp, incoming)
    value_outgoing = price_history.estimate_value(tx.timestamp, outgoing)
    if value_incoming is None or value_outgoing is None:
        return value_incoming or value_outgoing

    low = min(value_incoming.quantity, value_outgoing.quantity)
    high = max(value_incoming.quantity, value_outgoing.quantity)
    if low < high * MAX_LEG_DEVIATION:
        logger.warning(
            "%s%% value difference between incoming %s (%s) and outgoing %s (%s)",
            round(100 * (high - low) / high),
            incoming,
            value_incoming,
            outgoing,
            value_outgoing,
        )

    average = (value_incoming.quantity + value_outgoing.quantity) / 2
    return Amount(quantity=average, currency=price_history.reporting_currency)


__all__ = ["collect_price_requirements", "estimate_transaction_values"]

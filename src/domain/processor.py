from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, assert_never

from .base_types import (
    Amount,
    GainError,
    InvalidFiatValue,
    OperationKind,
    PairOperation,
    SingleOperation,
    Transaction,
    transaction_sort_key,
)
from .fifo import FifoLedger
from .ledger import CapitalGain

logger = logging.getLogger(__name__)


class UnmatchedTransferError(ValueError):
    def __init__(self, tx: Transaction) -> None:
        super().__init__(
            f"{tx.operation.kind} transaction {tx.index} @{tx.timestamp.isoformat()} has no matching transaction"
        )
        self.transaction = tx


@dataclass
class ProcessResult:
    capital_gains: list[CapitalGain] = field(default_factory=list)
    transactions: list[Transaction] = field(default_factory=list)

    @property
    def failed_transactions(self) -> list[Transaction]:
        return [tx for tx in self.transactions if tx.gain_error is not None]


@dataclass
class _FeeState:
    fee: Amount | None
    fee_value: Amount | None

    def try_include(self, amount: Amount, value: Amount | None) -> tuple[Amount, Amount | None]:
        """Fold the fee into ``amount`` and its value into ``value`` when both sums are possible."""
        if self.fee is None or self.fee_value is None or value is None:
            return amount, value

        amount_with_fee = amount.try_add(self.fee)
        value_with_fee = value.try_add(self.fee_value)
        if amount_with_fee is None or value_with_fee is None:
            return amount, value

        self.fee = None
        self.fee_value = None
        return amount_with_fee, value_with_fee


class _GainAccumulator:
    """Net gain of a transaction; the first error wins."""

    def __init__(self) -> None:
        self.result: Decimal | GainError | None = None

    def add(self, outcome: Decimal | GainError) -> None:
        if isinstance(self.result, GainError):
            return
        if self.result is None or isinstance(outcome, GainError):
            self.result = outcome
        else:
            self.result += outcome

    def add_if_error(self, outcome: Decimal | GainError) -> None:
        if isinstance(outcome, GainError) and self.result is None:
            self.result = outcome


class TransactionProcessor:
    """Drive a FIFO ledger over a time-ordered sequence of transactions.

    Every transaction that touches the ledger gets its ``gain`` set to the net
    realized gain or to the first error met. Errors never stop the pass.
    """

    def __init__(self, ledger: FifoLedger | None = None) -> None:
        self.ledger = ledger or FifoLedger()

    @property
    def reporting_currency(self) -> str:
        return self.ledger.reporting_currency

    def process(self, transactions: Iterable[Transaction]) -> ProcessResult:
        ordered = self._ordered(list(transactions))
        result = ProcessResult(transactions=ordered)

        for tx in ordered:
            self._process_transaction(tx, result.capital_gains)
            if tx.gain_error is not None:
                logger.debug("Transaction %d @%s: %s", tx.index, tx.timestamp.isoformat(), tx.gain_error)

        return result

    def _ordered(self, transactions: list[Transaction]) -> list[Transaction]:
        keys = [transaction_sort_key(tx) for tx in transactions]
        if all(a <= b for a, b in zip(keys, keys[1:])):
            return transactions

        logger.warning("Transactions are not in processing order, sorting %d transactions", len(transactions))
        return sorted(transactions, key=transaction_sort_key)

    def _process_transaction(self, tx: Transaction, capital_gains: list[CapitalGain]) -> None:
        fees = _FeeState(fee=tx.fee, fee_value=tx.fee_value)
        gain = _GainAccumulator()
        operation = tx.operation
        kind = operation.kind

        match kind:
            case OperationKind.STAKING | OperationKind.CHAIN_SPLIT:
                assert isinstance(operation, SingleOperation)
                if not operation.amount.is_fiat(self.reporting_currency):
                    # Treated as a buy at zero cost.
                    zero_cost = Amount(quantity=Decimal(0), currency=self.reporting_currency)
                    gain.add(self._acquire(tx, operation.amount, zero_cost))
            case (
                OperationKind.AIRDROP
                | OperationKind.BUY
                | OperationKind.CASHBACK
                | OperationKind.INCOME
                | OperationKind.SPAM
                | OperationKind.INCOMING_GIFT
                | OperationKind.REALIZED_PROFIT
            ):
                assert isinstance(operation, SingleOperation)
                if not operation.amount.is_fiat(self.reporting_currency):
                    gain.add(self._acquire(tx, operation.amount, tx.value))
            case OperationKind.TRADE:
                assert isinstance(operation, PairOperation)
                # Trading crypto for crypto is handled as selling the outgoing
                # side for fiat and buying the incoming side with that fiat.
                outgoing, value = fees.try_include(operation.outgoing, tx.value)
                if not outgoing.is_fiat(self.reporting_currency):
                    gain.add(self._dispose(tx, outgoing, value, capital_gains))
                if not operation.incoming.is_fiat(self.reporting_currency):
                    gain.add_if_error(self._acquire(tx, operation.incoming, value))
            case OperationKind.SWAP:
                assert isinstance(operation, PairOperation)
                self._process_swap(tx, operation, gain, capital_gains)
            case (
                OperationKind.FEE
                | OperationKind.EXPENSE
                | OperationKind.SELL
                | OperationKind.OUTGOING_GIFT
                | OperationKind.REALIZED_LOSS
            ):
                assert isinstance(operation, SingleOperation)
                if not operation.amount.is_fiat(self.reporting_currency):
                    amount, value = fees.try_include(operation.amount, tx.value)
                    gain.add(self._dispose(tx, amount, value, capital_gains))
            case OperationKind.STOLEN | OperationKind.LOST | OperationKind.BURN:
                assert isinstance(operation, SingleOperation)
                if not operation.amount.is_fiat(self.reporting_currency):
                    nothing = Amount(quantity=Decimal(0), currency=self.reporting_currency)
                    gain.add(self._dispose(tx, operation.amount, nothing, capital_gains))
            case OperationKind.FIAT_DEPOSIT | OperationKind.FIAT_WITHDRAWAL:
                # Fiat is not tracked in lots.
                pass
            case OperationKind.RECEIVE | OperationKind.SEND:
                # Transfers between own wallets; unmatched ones should have been imported as buys or sells.
                if tx.matching_tx is None:
                    raise UnmatchedTransferError(tx)
            case _:
                assert_never(kind)

        if fees.fee is not None and not fees.fee.is_fiat(self.reporting_currency):
            gain.add(self._dispose(tx, fees.fee, fees.fee_value, capital_gains))

        if gain.result is not None:
            tx.gain = gain.result

    def _process_swap(
        self,
        tx: Transaction,
        operation: PairOperation,
        gain: _GainAccumulator,
        capital_gains: list[CapitalGain],
    ) -> None:
        incoming, outgoing = operation.incoming, operation.outgoing
        if not incoming.is_fiat(self.reporting_currency) and not outgoing.is_fiat(self.reporting_currency):
            try:
                gain.add(self.ledger.swap(outgoing, incoming, tx.timestamp, tx.index))
            except GainError as err:
                gain.add(err)
            return

        # Swapping to or from fiat is not supported, fall back to a plain trade.
        if not outgoing.is_fiat(self.reporting_currency):
            gain.add(self._dispose(tx, outgoing, tx.value, capital_gains))
        if not incoming.is_fiat(self.reporting_currency):
            gain.add_if_error(self._acquire(tx, incoming, tx.value))
        gain.add(InvalidFiatValue())

    def _acquire(self, tx: Transaction, amount: Amount, value: Amount | None) -> Decimal | GainError:
        try:
            return self.ledger.acquire(amount, value, tx.timestamp, tx.index)
        except GainError as err:
            return err

    def _dispose(
        self,
        tx: Transaction,
        amount: Amount,
        value: Amount | None,
        capital_gains: list[CapitalGain],
    ) -> Decimal | GainError:
        try:
            return self.ledger.dispose_holdings(
                amount,
                value,
                tx.timestamp,
                tx.index,
                capital_gains=capital_gains,
            )
        except GainError as err:
            return err

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import Union

from pydantic import BaseModel, ConfigDict, model_validator

from config import config


def asset_key(currency: str, token_id: str | None = None) -> str:
    symbol = currency.strip().upper()
    if token_id is not None:
        return f"{token_id}:{symbol}"
    return symbol


class Amount(BaseModel):
    """A quantity of a single currency or of one non-fungible token.

    Quantities are unsigned; the direction of a movement is given by the
    operation that carries the amount.
    """

    model_config = ConfigDict(frozen=True)

    quantity: Decimal
    currency: str
    token_id: str | None = None

    @model_validator(mode="after")
    def _validate_fields(self) -> Amount:
        if not self.currency.strip():
            raise ValueError("Amount.currency must be non-empty")
        if self.token_id is not None and self.quantity != 1:
            raise ValueError("Amount with a token_id must have quantity 1")
        return self

    @property
    def symbol(self) -> str:
        return self.currency.strip().upper()

    @property
    def asset_key(self) -> str:
        """Key of the lot queue holding this amount."""
        return asset_key(self.currency, self.token_id)

    def is_fiat(self, reporting_currency: str | None = None) -> bool:
        """Fiat currencies and the reporting currency are not tracked in lots."""
        if self.token_id is not None:
            return False
        settings = config()
        reporting_currency = reporting_currency or settings.reporting_currency
        return self.symbol == reporting_currency.strip().upper() or self.symbol in settings.fiat_currencies

    def try_add(self, other: Amount) -> Amount | None:
        if self.token_id is not None or other.token_id is not None:
            return None
        if self.symbol != other.symbol:
            return None
        return Amount(quantity=self.quantity + other.quantity, currency=self.currency)

    def __str__(self) -> str:
        if self.token_id is not None:
            return f"{self.currency} #{self.token_id}"
        return f"{self.quantity} {self.currency}"


class GainErrorKind(StrEnum):
    INVALID_TRANSACTION_ORDER = "INVALID_TRANSACTION_ORDER"
    MISSING_FIAT_VALUE = "MISSING_FIAT_VALUE"
    MISSING_COST_BASE = "MISSING_COST_BASE"
    INVALID_FIAT_VALUE = "INVALID_FIAT_VALUE"
    INVALID_SWAP = "INVALID_SWAP"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"


class GainError(Exception):
    """Reason a capital gain could not be determined."""

    kind: GainErrorKind

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.kind.value)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GainError):
            return NotImplemented
        return type(self) is type(other) and self.args == other.args

    def __hash__(self) -> int:
        return hash((type(self), self.args))


class InvalidTransactionOrder(GainError):
    kind = GainErrorKind.INVALID_TRANSACTION_ORDER


class MissingFiatValue(GainError):
    kind = GainErrorKind.MISSING_FIAT_VALUE


class MissingCostBase(GainError):
    kind = GainErrorKind.MISSING_COST_BASE


class InvalidFiatValue(GainError):
    kind = GainErrorKind.INVALID_FIAT_VALUE


class InvalidSwap(GainError):
    kind = GainErrorKind.INVALID_SWAP


class InsufficientBalance(GainError):
    kind = GainErrorKind.INSUFFICIENT_BALANCE

    def __init__(self, shortfall: Amount) -> None:
        super().__init__(f"Insufficient balance, missing {shortfall}")
        self.shortfall = shortfall


class OperationKind(StrEnum):
    BUY = "BUY"
    SELL = "SELL"
    TRADE = "TRADE"
    SWAP = "SWAP"
    FIAT_DEPOSIT = "FIAT_DEPOSIT"
    FIAT_WITHDRAWAL = "FIAT_WITHDRAWAL"
    FEE = "FEE"
    RECEIVE = "RECEIVE"
    SEND = "SEND"
    CHAIN_SPLIT = "CHAIN_SPLIT"
    EXPENSE = "EXPENSE"
    STOLEN = "STOLEN"
    LOST = "LOST"
    BURN = "BURN"
    INCOME = "INCOME"
    AIRDROP = "AIRDROP"
    STAKING = "STAKING"
    CASHBACK = "CASHBACK"
    INCOMING_GIFT = "INCOMING_GIFT"
    OUTGOING_GIFT = "OUTGOING_GIFT"
    REALIZED_PROFIT = "REALIZED_PROFIT"
    REALIZED_LOSS = "REALIZED_LOSS"
    SPAM = "SPAM"


PAIR_KINDS = frozenset({OperationKind.TRADE, OperationKind.SWAP})

INCOMING_KINDS = frozenset(
    {
        OperationKind.BUY,
        OperationKind.FIAT_DEPOSIT,
        OperationKind.RECEIVE,
        OperationKind.CHAIN_SPLIT,
        OperationKind.INCOME,
        OperationKind.AIRDROP,
        OperationKind.STAKING,
        OperationKind.CASHBACK,
        OperationKind.INCOMING_GIFT,
        OperationKind.REALIZED_PROFIT,
        OperationKind.SPAM,
    }
)


class SingleOperation(BaseModel):
    """Operation moving a single amount, in or out depending on its kind."""

    model_config = ConfigDict(frozen=True)

    kind: OperationKind
    amount: Amount

    @model_validator(mode="after")
    def _validate_kind(self) -> SingleOperation:
        if self.kind in PAIR_KINDS:
            raise ValueError(f"{self.kind} requires incoming and outgoing amounts")
        return self


class PairOperation(BaseModel):
    """Trade or swap of one amount for another."""

    model_config = ConfigDict(frozen=True)

    kind: OperationKind
    incoming: Amount
    outgoing: Amount

    @model_validator(mode="after")
    def _validate_kind(self) -> PairOperation:
        if self.kind not in PAIR_KINDS:
            raise ValueError(f"{self.kind} carries a single amount")
        return self


Operation = Union[SingleOperation, PairOperation]


class Transaction(BaseModel):
    """Canonical transaction as produced by the import layer.

    ``gain`` is the only field written by the engine: the net realized gain of
    the transaction, or the first error met while computing it.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    timestamp: datetime
    operation: Operation
    index: int = 0
    fee: Amount | None = None
    fee_value: Amount | None = None
    value: Amount | None = None
    matching_tx: int | None = None
    description: str = ""

    gain: Decimal | GainError | None = None

    def incoming_outgoing(self) -> tuple[Amount | None, Amount | None]:
        operation = self.operation
        if isinstance(operation, PairOperation):
            return operation.incoming, operation.outgoing
        if operation.kind in INCOMING_KINDS:
            return operation.amount, None
        return None, operation.amount

    @property
    def gain_error(self) -> GainError | None:
        return self.gain if isinstance(self.gain, GainError) else None


def transaction_sort_key(tx: Transaction) -> tuple[datetime, int, str]:
    """Order of the input contract.

    By timestamp, then transactions with an incoming amount before those that
    only spend, then trades by fee currency.
    """
    incoming, _ = tx.incoming_outgoing()
    fee_currency = ""
    if tx.operation.kind == OperationKind.TRADE and tx.fee is not None:
        fee_currency = tx.fee.symbol
    return tx.timestamp, 0 if incoming is not None else 1, fee_currency


def sort_transactions(transactions: list[Transaction]) -> None:
    transactions.sort(key=transaction_sort_key)


__all__ = [
    "Amount",
    "GainError",
    "GainErrorKind",
    "InsufficientBalance",
    "InvalidFiatValue",
    "InvalidSwap",
    "InvalidTransactionOrder",
    "MissingCostBase",
    "MissingFiatValue",
    "Operation",
    "OperationKind",
    "PairOperation",
    "SingleOperation",
    "Transaction",
    "asset_key",
    "sort_transactions",
    "transaction_sort_key",
]

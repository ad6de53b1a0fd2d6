from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from itertools import groupby
from typing import Iterable

from config import config
from domain.base_types import OperationKind, PairOperation, Transaction, transaction_sort_key
from domain.ledger import CapitalGain, LotSnapshot
from domain.processor import TransactionProcessor

from .formatting import format_currency, format_decimal, format_table

ALL_TIME = 0


@dataclass
class CurrencySummary:
    currency: str
    balance_start: Decimal = Decimal(0)
    balance_end: Decimal = Decimal(0)
    cost_start: Decimal = Decimal(0)
    cost_end: Decimal = Decimal(0)
    quantity_disposed: Decimal = Decimal(0)
    cost: Decimal = Decimal(0)
    fees: Decimal = Decimal(0)
    proceeds: Decimal = Decimal(0)

    @property
    def capital_profit_loss(self) -> Decimal:
        return self.proceeds - self.cost - self.fees


@dataclass
class TaxReport:
    """Capital gains of one calendar year, or of all years when ``year`` is ALL_TIME."""

    year: int
    short_term_cost: Decimal = Decimal(0)
    short_term_proceeds: Decimal = Decimal(0)
    short_term_capital_gains: Decimal = Decimal(0)
    short_term_capital_losses: Decimal = Decimal(0)
    long_term_capital_gains: Decimal = Decimal(0)
    long_term_capital_losses: Decimal = Decimal(0)
    currencies: list[CurrencySummary] = field(default_factory=list)
    gains: list[CapitalGain] = field(default_factory=list)

    @property
    def short_term_net_capital_gains(self) -> Decimal:
        return self.short_term_capital_gains - self.short_term_capital_losses

    @property
    def long_term_net_capital_gains(self) -> Decimal:
        return self.long_term_capital_gains - self.long_term_capital_losses

    @property
    def total_capital_gains(self) -> Decimal:
        return self.short_term_capital_gains + self.long_term_capital_gains

    @property
    def total_capital_losses(self) -> Decimal:
        return self.short_term_capital_losses + self.long_term_capital_losses

    @property
    def total_net_capital_gains(self) -> Decimal:
        return self.total_capital_gains - self.total_capital_losses

    def currency(self, currency: str) -> CurrencySummary | None:
        return next((summary for summary in self.currencies if summary.currency == currency), None)


def calculate_tax_reports(
    transactions: Iterable[Transaction],
    processor: TransactionProcessor | None = None,
    *,
    long_term_days: int | None = None,
) -> list[TaxReport]:
    """Process transactions year by year and summarize the realized gains.

    The ledger carries over from one year to the next. The last report covers
    all years.
    """
    processor = processor or TransactionProcessor()
    long_term_days = config().long_term_days if long_term_days is None else long_term_days
    ordered = sorted(transactions, key=transaction_sort_key)

    summaries: dict[str, CurrencySummary] = {}
    reports: list[TaxReport] = []

    for year, year_transactions in groupby(ordered, key=lambda tx: tx.timestamp.year):
        txs = list(year_transactions)
        summaries = {
            currency: CurrencySummary(
                currency=currency,
                balance_start=summary.balance_end,
                cost_start=summary.cost_end,
            )
            for currency, summary in summaries.items()
            if summary.balance_end > 0
        }

        result = processor.process(txs)
        report = TaxReport(year=year, gains=result.capital_gains)

        for gain in result.capital_gains:
            _add_gain(report, gain, long_term_days)
            summary = summaries.setdefault(gain.amount.asset_key, CurrencySummary(currency=gain.amount.asset_key))
            summary.quantity_disposed += gain.amount.quantity
            summary.cost += gain.cost
            summary.proceeds += gain.proceeds

        for tx in txs:
            _add_unmerged_trade_fee(summaries, tx)

        _apply_holdings(summaries, processor.ledger.holdings())

        # Fees not merged into a disposal count as short-term losses.
        for summary in summaries.values():
            report.short_term_capital_losses += summary.fees
            report.short_term_cost += summary.fees

        report.currencies = _sorted_summaries(summaries.values())
        reports.append(report)

    reports.append(_all_time_report(reports))
    return reports


def _add_gain(report: TaxReport, gain: CapitalGain, long_term_days: int) -> None:
    profit = gain.profit
    long_term = gain.is_long_term(long_term_days)

    if profit >= 0:
        if long_term:
            report.long_term_capital_gains += profit
        else:
            report.short_term_capital_gains += profit
    elif long_term:
        report.long_term_capital_losses -= profit
    else:
        report.short_term_capital_losses -= profit

    if not long_term:
        report.short_term_cost += gain.cost
        report.short_term_proceeds += gain.proceeds


def _add_unmerged_trade_fee(summaries: dict[str, CurrencySummary], tx: Transaction) -> None:
    operation = tx.operation
    if operation.kind != OperationKind.TRADE or tx.fee is None or tx.fee_value is None:
        return
    assert isinstance(operation, PairOperation)
    if operation.outgoing.try_add(tx.fee) is not None:
        return

    currency = tx.fee.asset_key
    summary = summaries.setdefault(currency, CurrencySummary(currency=currency))
    summary.fees += tx.fee_value.quantity


def _apply_holdings(summaries: dict[str, CurrencySummary], holdings: list[LotSnapshot]) -> None:
    balances: dict[str, Decimal] = {}
    costs: dict[str, Decimal] = {}
    for lot in holdings:
        balances[lot.asset_key] = balances.get(lot.asset_key, Decimal(0)) + lot.remaining
        if lot.unit_price is not None:
            costs[lot.asset_key] = costs.get(lot.asset_key, Decimal(0)) + lot.remaining * lot.unit_price

    # Every held currency gets an entry, even without gains or losses this year.
    for currency in balances:
        summaries.setdefault(currency, CurrencySummary(currency=currency))

    for currency, summary in summaries.items():
        summary.balance_end = balances.get(currency, Decimal(0))
        summary.cost_end = costs.get(currency, Decimal(0))


def _sorted_summaries(summaries: Iterable[CurrencySummary]) -> list[CurrencySummary]:
    return sorted(summaries, key=lambda summary: (-summary.cost, summary.currency))


def _all_time_report(reports: list[TaxReport]) -> TaxReport:
    all_time = TaxReport(year=ALL_TIME)
    currencies: dict[str, CurrencySummary] = {}

    for report in reports:
        all_time.short_term_cost += report.short_term_cost
        all_time.short_term_proceeds += report.short_term_proceeds
        all_time.short_term_capital_gains += report.short_term_capital_gains
        all_time.short_term_capital_losses += report.short_term_capital_losses
        all_time.long_term_capital_gains += report.long_term_capital_gains
        all_time.long_term_capital_losses += report.long_term_capital_losses
        all_time.gains.extend(report.gains)

        for year_summary in report.currencies:
            summary = currencies.setdefault(year_summary.currency, CurrencySummary(currency=year_summary.currency))
            summary.balance_end = year_summary.balance_end
            summary.cost_end = year_summary.cost_end
            summary.quantity_disposed += year_summary.quantity_disposed
            summary.cost += year_summary.cost
            summary.fees += year_summary.fees
            summary.proceeds += year_summary.proceeds

    all_time.currencies = _sorted_summaries(currencies.values())
    return all_time


def render_tax_report(report: TaxReport, *, reporting_currency: str | None = None) -> None:
    reporting_currency = reporting_currency or config().reporting_currency
    title = "All time" if report.year == ALL_TIME else str(report.year)
    print(f"Capital gains {title} ({reporting_currency}):")

    totals = [
        ("Short-term proceeds", report.short_term_proceeds),
        ("Short-term cost", report.short_term_cost),
        ("Short-term gains", report.short_term_capital_gains),
        ("Short-term losses", report.short_term_capital_losses),
        ("Short-term net", report.short_term_net_capital_gains),
        ("Long-term gains", report.long_term_capital_gains),
        ("Long-term losses", report.long_term_capital_losses),
        ("Long-term net", report.long_term_net_capital_gains),
        ("Total net", report.total_net_capital_gains),
    ]
    label_width = max(len(label) for label, _ in totals)
    amount_width = max(len(format_currency(amount)) for _, amount in totals)
    for label, amount in totals:
        print(f"  {label:<{label_width}} {format_currency(amount):>{amount_width}}")

    if not report.currencies:
        print("  (no currencies)")
        return

    columns = ("Currency", "Disposed", "Cost", "Proceeds", "Fees", "Profit/Loss", "Balance")
    rows = [
        (
            summary.currency,
            format_decimal(summary.quantity_disposed),
            format_currency(summary.cost),
            format_currency(summary.proceeds),
            format_currency(summary.fees),
            format_currency(summary.capital_profit_loss),
            format_decimal(summary.balance_end),
        )
        for summary in report.currencies
    ]
    print("\n".join(format_table(columns, rows)))


__all__ = ["ALL_TIME", "CurrencySummary", "TaxReport", "calculate_tax_reports", "render_tax_report"]

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from domain.base_types import OperationKind, Transaction
from domain.processor import TransactionProcessor
from tests.constants import BTC, ETH
from tests.helpers.time_utils import amount, eur, make_tx
from utils.tax_summary import ALL_TIME, calculate_tax_reports, render_tax_report


def _ts(year: int, month: int, day: int) -> datetime:
    return datetime(year, month, day, 12, tzinfo=timezone.utc)


@pytest.fixture
def transactions() -> list[Transaction]:
    return [
        make_tx(OperationKind.BUY, amount=amount(1, BTC), value=eur(10000), timestamp=_ts(2023, 1, 10)),
        make_tx(OperationKind.SELL, amount=amount("0.5", BTC), value=eur(8000), timestamp=_ts(2023, 6, 1)),
        make_tx(OperationKind.BUY, amount=amount(1, ETH), value=eur(2000), timestamp=_ts(2024, 1, 5)),
        make_tx(OperationKind.SELL, amount=amount("0.5", BTC), value=eur(4000), timestamp=_ts(2024, 3, 1)),
        make_tx(
            OperationKind.TRADE,
            incoming=amount(1, "SOL"),
            outgoing=eur(100),
            value=eur(100),
            fee=amount("0.1", ETH),
            fee_value=eur(300),
            timestamp=_ts(2024, 4, 1),
        ),
    ]


def test_reports_per_year_and_all_time(transactions: list[Transaction]) -> None:
    reports = calculate_tax_reports(transactions, TransactionProcessor())

    assert [report.year for report in reports] == [2023, 2024, ALL_TIME]

    first, second, all_time = reports
    assert first.short_term_capital_gains == Decimal(3000)
    assert first.short_term_cost == Decimal(5000)
    assert first.short_term_proceeds == Decimal(8000)
    assert first.long_term_capital_losses == 0

    assert second.long_term_capital_losses == Decimal(1000)
    assert second.short_term_capital_gains == Decimal(100)
    assert second.short_term_proceeds == Decimal(300)
    # The fee paid in ETH counts as a loss on top of its disposal.
    assert second.short_term_capital_losses == Decimal(300)
    assert second.short_term_cost == Decimal(500)

    assert all_time.short_term_capital_gains == Decimal(3100)
    assert all_time.total_capital_losses == Decimal(1300)
    assert all_time.total_net_capital_gains == Decimal(1800)
    assert len(all_time.gains) == 3


def test_currency_summaries_carry_balances_between_years(transactions: list[Transaction]) -> None:
    first, second, all_time = calculate_tax_reports(transactions)

    btc_2023 = first.currency(BTC)
    assert btc_2023 is not None
    assert btc_2023.balance_end == Decimal("0.5")
    assert btc_2023.cost_end == Decimal(5000)
    assert btc_2023.capital_profit_loss == Decimal(3000)

    btc_2024 = second.currency(BTC)
    assert btc_2024 is not None
    assert btc_2024.balance_start == Decimal("0.5")
    assert btc_2024.cost_start == Decimal(5000)
    assert btc_2024.balance_end == 0

    eth_2024 = second.currency(ETH)
    assert eth_2024 is not None
    assert eth_2024.fees == Decimal(300)
    assert eth_2024.balance_end == Decimal("0.9")
    assert eth_2024.cost_end == Decimal(1800)

    # Held currencies are listed even without disposals.
    assert [summary.currency for summary in second.currencies] == [BTC, ETH, "SOL"]

    btc_total = all_time.currency(BTC)
    assert btc_total is not None
    assert btc_total.quantity_disposed == 1
    assert btc_total.cost == Decimal(10000)
    assert btc_total.proceeds == Decimal(12000)


def test_long_term_threshold_is_configurable(transactions: list[Transaction]) -> None:
    reports = calculate_tax_reports(transactions, long_term_days=500)

    assert reports[1].long_term_capital_losses == 0
    assert reports[1].short_term_capital_losses == Decimal(1300)


def test_no_transactions_gives_empty_all_time_report() -> None:
    reports = calculate_tax_reports([])

    assert len(reports) == 1
    assert reports[0].year == ALL_TIME
    assert reports[0].total_net_capital_gains == 0
    assert reports[0].currencies == []


def test_render_tax_report(transactions: list[Transaction], capsys: pytest.CaptureFixture[str]) -> None:
    reports = calculate_tax_reports(transactions)

    render_tax_report(reports[0])
    render_tax_report(reports[-1])

    output = capsys.readouterr().out
    assert "Capital gains 2023 (EUR):" in output
    assert "Capital gains All time (EUR):" in output
    assert "3000.00" in output
    assert "BTC" in output

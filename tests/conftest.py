import pytest

from domain.fifo import FifoLedger
from domain.processor import TransactionProcessor
from services.price_history import PriceHistory
from tests.helpers.time_utils import DEFAULT_TIME_GEN


@pytest.fixture(autouse=True)
def _reset_default_time_gen() -> None:
    DEFAULT_TIME_GEN.reset()


@pytest.fixture(scope="function")
def ledger() -> FifoLedger:
    return FifoLedger(reporting_currency="EUR")


@pytest.fixture(scope="function")
def processor(ledger: FifoLedger) -> TransactionProcessor:
    return TransactionProcessor(ledger)


@pytest.fixture(scope="function")
def price_history() -> PriceHistory:
    return PriceHistory(reporting_currency="EUR")

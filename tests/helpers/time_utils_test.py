from datetime import datetime, timezone
from random import Random

from domain.base_types import OperationKind, PairOperation, SingleOperation
from tests.constants import ETH
from tests.helpers.time_utils import TimeGenerator, amount, eur, make_tx


def test_time_generator_increases_with_seed() -> None:
    rng = Random(42)
    gen = TimeGenerator(_rng=rng)

    ts1 = gen()
    ts2 = gen()
    ts3 = gen()

    assert ts1 < ts2 < ts3
    gaps = [(ts2 - ts1).total_seconds(), (ts3 - ts2).total_seconds()]
    for gap in gaps:
        assert 5 <= gap <= 60

    # Deterministic given the same seed
    gen_again = TimeGenerator(_rng=Random(42))
    ts1_b, ts2_b, ts3_b = gen_again(), gen_again(), gen_again()
    gaps_b = [(ts2_b - ts1_b).total_seconds(), (ts3_b - ts2_b).total_seconds()]
    assert gaps == gaps_b


def test_make_tx_uses_generator_when_timestamp_missing() -> None:
    gen = TimeGenerator(_rng=Random(1))

    tx1 = make_tx(OperationKind.STAKING, amount=amount(1, ETH), ts_gen=gen)
    tx2 = make_tx(OperationKind.STAKING, amount=amount(1, ETH), ts_gen=gen)

    assert tx1.timestamp < tx2.timestamp
    assert tx1.timestamp.tzinfo == timezone.utc
    assert tx1.index != tx2.index


def test_make_tx_respects_provided_timestamp_and_index() -> None:
    explicit_ts = datetime(2024, 2, 1, tzinfo=timezone.utc)

    tx = make_tx(OperationKind.STAKING, amount=amount(1, ETH), timestamp=explicit_ts, index=42)

    assert tx.timestamp == explicit_ts
    assert tx.index == 42


def test_make_tx_builds_operation_shape() -> None:
    single = make_tx(OperationKind.BUY, amount=amount(1, ETH), value=eur(2000))
    pair = make_tx(OperationKind.TRADE, incoming=amount(1, ETH), outgoing=eur(2000))

    assert isinstance(single.operation, SingleOperation)
    assert single.value == eur(2000)
    assert isinstance(pair.operation, PairOperation)


def test_default_generator_is_reset_between_tests() -> None:
    # After the autouse reset, we should start from the same baseline.
    first = make_tx(OperationKind.STAKING, amount=amount(1, ETH))
    second = make_tx(OperationKind.STAKING, amount=amount(1, ETH))

    assert first.timestamp < second.timestamp

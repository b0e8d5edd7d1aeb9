"""Tests for the aggregation engine and its release gate."""

from decimal import Decimal

import pytest

from mindbridge_privacy.aggregation import (
    AggregationEngine,
    BudgetExceededError,
    BudgetLedger,
    EmptyInputError,
    KeyMismatchError,
    KeyPair,
    LaplaceSampler,
    MetricSchema,
    MetricSchemaError,
    encrypt_metric,
)
from mindbridge_privacy.aggregation.config import confidence_half_width

TABLE_BITS = 8


def _engine(schema=None, cap=1.0, seed=11) -> AggregationEngine:
    return AggregationEngine(
        schema or MetricSchema.averages("mood"),
        ledger=BudgetLedger(default_cap=cap),
        sampler=LaplaceSampler(seed=seed),
        table_bits=TABLE_BITS,
    )


def _mood_metrics(engine, values):
    return [engine.encrypt(f"user-{i}", {"mood": v}) for i, v in enumerate(values)]


def test_exact_average_before_noise() -> None:
    engine = _engine()
    aggregate = engine.aggregate(_mood_metrics(engine, [60, 80, 100]))
    result = aggregate["mood"]
    assert result.exact_sum == 240
    assert result.user_count == 3
    assert result.statistic == 80.0
    assert result.released_value is None


def test_count_field_is_a_sum() -> None:
    schema = MetricSchema({"mood": "average", "sessions": "count"})
    engine = _engine(schema)
    metrics = [
        engine.encrypt("a", {"mood": 50, "sessions": 3}),
        engine.encrypt("b", {"mood": 70, "sessions": 4}),
    ]
    aggregate = engine.aggregate(metrics)
    assert aggregate["mood"].statistic == 60.0
    assert aggregate["sessions"].statistic == 7.0
    assert aggregate.user_count == 2


def test_release_adds_noise_and_reports_interval() -> None:
    engine = _engine()
    aggregate = engine.aggregate(_mood_metrics(engine, [60, 80, 100]))
    release = engine.release(aggregate, epsilon=0.5, consumer_id="dashboard")

    expected_noise = LaplaceSampler(seed=11).sample(0.5)
    result = release["mood"]
    assert result.released_value == pytest.approx(80.0 + expected_noise)
    assert result.epsilon_consumed == 0.5
    assert result.confidence_half_width == pytest.approx(confidence_half_width(0.5))
    assert release.values() == {"mood": result.released_value}
    assert float(release.budget.remaining) == pytest.approx(0.5)


def test_one_charge_per_release_regardless_of_fields() -> None:
    schema = MetricSchema.averages("mood", "sleep", "energy")
    engine = _engine(schema)
    aggregate = engine.aggregate([
        engine.encrypt("a", {"mood": 1, "sleep": 2, "energy": 3}),
    ])
    engine.release(aggregate, 0.4, "analyst")
    assert float(engine.ledger.spent("analyst")) == pytest.approx(0.4)


def test_release_accepts_decimal_epsilon() -> None:
    engine = _engine()
    aggregate = engine.aggregate(_mood_metrics(engine, [60, 80, 100]))
    release = engine.release(aggregate, Decimal("0.5"), "dashboard")

    expected_noise = LaplaceSampler(seed=11).sample(0.5)
    assert release.epsilon == 0.5
    assert release["mood"].released_value == pytest.approx(80.0 + expected_noise)
    assert release["mood"].confidence_half_width == pytest.approx(confidence_half_width(0.5))
    assert engine.ledger.spent("dashboard") == Decimal("0.5")


def test_release_denied_when_budget_exhausted() -> None:
    engine = _engine(cap=1.0)
    aggregate = engine.aggregate(_mood_metrics(engine, [10, 20]))
    engine.release(aggregate, 0.6, "analyst")
    with pytest.raises(BudgetExceededError):
        engine.release(aggregate, 0.6, "analyst")
    assert float(engine.ledger.spent("analyst")) == pytest.approx(0.6)


def test_empty_input() -> None:
    with pytest.raises(EmptyInputError):
        _engine().aggregate([])


def test_duplicate_user_rejected() -> None:
    engine = _engine()
    metrics = [engine.encrypt("same", {"mood": 1}), engine.encrypt("same", {"mood": 2})]
    with pytest.raises(MetricSchemaError):
        engine.aggregate(metrics)


def test_foreign_key_rejected() -> None:
    engine = _engine()
    other = KeyPair.generate()
    foreign = encrypt_metric("x", {"mood": 5}, engine.schema, other.public)
    with pytest.raises(KeyMismatchError):
        engine.aggregate([foreign])

    other_engine = _engine()
    aggregate = other_engine.aggregate(_mood_metrics(other_engine, [1]))
    with pytest.raises(KeyMismatchError):
        engine.release(aggregate, 0.1, "analyst")
    assert engine.ledger.spent("analyst") == 0


@pytest.mark.parametrize(
    "vector",
    [{"mood": 1, "extra": 2}, {}, {"mood": -1}, {"mood": 2 ** 32}, {"mood": 1.5}],
)
def test_vector_validation(vector) -> None:
    with pytest.raises(MetricSchemaError):
        _engine().encrypt("u", vector)


def test_schema_validation() -> None:
    with pytest.raises(MetricSchemaError):
        MetricSchema({})
    with pytest.raises(MetricSchemaError):
        MetricSchema({"mood": "median"})
    with pytest.raises(MetricSchemaError):
        _engine().encrypt("", {"mood": 1})


def test_invalid_epsilon_spends_nothing() -> None:
    engine = _engine()
    aggregate = engine.aggregate(_mood_metrics(engine, [1]))
    with pytest.raises(ValueError):
        engine.release(aggregate, 0, "analyst")
    assert engine.ledger.spent("analyst") == 0

"""
Wellness milestone achievement circuit.

Proves that private wellness metrics meet four public minimum thresholds
without revealing them, and binds the claim to the user through Poseidon
commitments keyed by the user's secret. The achievement hash covers every
raw input, including the full mood history and its timestamps.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from ..config import (
    COMPARATOR_BITS,
    MAX_PRIVACY_SCORE,
    MOOD_HISTORY_LENGTH,
    SCALAR_FIELD,
    SECONDS_PER_DAY,
    TREND_SCALE,
)
from ..exceptions import ValidationError
from ..poseidon import poseidon_gadget, poseidon_hash
from ..r1cs import ConstraintSystem, LinearCombination, pack
from .gadgets import and_all, greater_eq
from .schema import (
    CircuitDefinition,
    Evaluation,
    SignalSpec,
    SignalValue,
    encode_field,
)

CIRCUIT_ID = "wellness_milestone"
CIRCUIT_VERSION = 1

SESSION_BITS = 16
TIMESTAMP_BITS = 32
VERIFICATION_TIMESTAMP_BITS = 64
TREND_BITS = 64


class MilestoneType(IntEnum):
    FIRST_STEPS = 0
    WEEKLY_STREAK = 1
    MONTHLY_CONSISTENCY = 2
    MOOD_IMPROVEMENT = 3
    RESILIENCE = 4
    PEER_MENTOR = 5


# Higher scores reveal less about the individual when the milestone is shown
PRIVACY_SCORES: Dict[int, int] = {
    MilestoneType.FIRST_STEPS: 1,
    MilestoneType.WEEKLY_STREAK: 2,
    MilestoneType.MONTHLY_CONSISTENCY: 3,
    MilestoneType.MOOD_IMPROVEMENT: 4,
    MilestoneType.RESILIENCE: 5,
    MilestoneType.PEER_MENTOR: 5,
}

# (private signal, public threshold, comparator width)
THRESHOLDS: Tuple[Tuple[str, str, int], ...] = (
    ("health_score", "min_health_score", COMPARATOR_BITS),
    ("session_count", "min_sessions", SESSION_BITS),
    ("consistency_days", "min_consistency_days", SESSION_BITS),
    ("improvement_score", "min_improvement", COMPARATOR_BITS),
)

PRIVATE_SIGNALS = (
    SignalSpec("health_score", bits=COMPARATOR_BITS),
    SignalSpec("session_count", bits=SESSION_BITS),
    SignalSpec("consistency_days", bits=SESSION_BITS),
    SignalSpec("improvement_score", bits=COMPARATOR_BITS),
    SignalSpec("user_secret"),
    SignalSpec("mood_history", bits=COMPARATOR_BITS, length=MOOD_HISTORY_LENGTH),
    SignalSpec("mood_timestamps", bits=TIMESTAMP_BITS, length=MOOD_HISTORY_LENGTH),
)

PUBLIC_SIGNALS = (
    SignalSpec("min_health_score", bits=COMPARATOR_BITS),
    SignalSpec("min_sessions", bits=SESSION_BITS),
    SignalSpec("min_consistency_days", bits=SESSION_BITS),
    SignalSpec("min_improvement", bits=COMPARATOR_BITS),
    SignalSpec("milestone_type", bits=COMPARATOR_BITS, max_value=int(max(MilestoneType))),
    SignalSpec("verification_timestamp", bits=VERIFICATION_TIMESTAMP_BITS),
)

OUTPUT_SIGNALS = (
    SignalSpec("achieved", bits=1),
    SignalSpec("achievement_hash"),
    SignalSpec("consistency_proof"),
    SignalSpec("improvement_proof"),
    SignalSpec("privacy_score", bits=COMPARATOR_BITS, max_value=MAX_PRIVACY_SCORE),
)

TREND_OFFSET = 1 << (TREND_BITS - 1)
TREND_FACTOR = SECONDS_PER_DAY * TREND_SCALE
# Bound on the regression denominator and division remainder:
# n * sum(x^2) < 30 * 30 * 2^64 < 2^74
DIVISION_BITS = 76
STAMPS_PER_ELEMENT = 7  # 7 * 32 = 224 bits per packed hash input

PRIVACY_TABLE: Tuple[int, ...] = tuple(
    min(PRIVACY_SCORES[t], MAX_PRIVACY_SCORE) for t in sorted(PRIVACY_SCORES)
)

# Scalar fields of the achievement hash, packed into one element
ACHIEVEMENT_SCALARS: Tuple[Tuple[str, int], ...] = (
    ("health_score", COMPARATOR_BITS),
    ("session_count", SESSION_BITS),
    ("consistency_days", SESSION_BITS),
    ("improvement_score", COMPARATOR_BITS),
    ("milestone_type", COMPARATOR_BITS),
    ("verification_timestamp", VERIFICATION_TIMESTAMP_BITS),
)


def regression_slope(
    moods: Sequence[int], timestamps: Sequence[int]
) -> Tuple[int, int, int, int]:
    """
    Least-squares slope of mood over time, floored to a fixed-point integer.

    Returns:
        (trend, numerator, denominator, remainder) with
        ``numerator * scale == trend * denominator + remainder`` and
        ``0 <= remainder < denominator``. A zero denominator (all timestamps
        equal) yields a flat trend of 0.
    """
    n = len(moods)
    sum_x = sum(timestamps)
    sum_y = sum(moods)
    sum_xy = sum(x * y for x, y in zip(timestamps, moods))
    sum_xx = sum(x * x for x in timestamps)

    numerator = n * sum_xy - sum_x * sum_y
    denominator = n * sum_xx - sum_x * sum_x
    if denominator == 0:
        return 0, numerator, 0, 0
    scaled = numerator * TREND_FACTOR
    trend = scaled // denominator
    return trend, numerator, denominator, scaled - trend * denominator


# Hash input layouts. Each works on field-encoded integers (native) and on
# linear combinations (in-circuit).

def _achievement_inputs(s: Mapping[str, Any]) -> List[Any]:
    stamps = s["mood_timestamps"]
    return [
        pack([(s[name], width) for name, width in ACHIEVEMENT_SCALARS]),
        pack([(mood, COMPARATOR_BITS) for mood in s["mood_history"]]),
        *(
            pack([(t, TIMESTAMP_BITS) for t in stamps[i:i + STAMPS_PER_ELEMENT]])
            for i in range(0, len(stamps), STAMPS_PER_ELEMENT)
        ),
        s["user_secret"],
    ]


def _consistency_inputs(s: Mapping[str, Any]) -> List[Any]:
    return [
        pack([(s["consistency_days"], SESSION_BITS), (s["session_count"], SESSION_BITS)]),
        s["user_secret"],
    ]


def _improvement_inputs(s: Mapping[str, Any], trend: Any) -> List[Any]:
    return [
        pack([(s["improvement_score"], COMPARATOR_BITS), (trend + TREND_OFFSET, TREND_BITS)]),
        s["user_secret"],
    ]


def _hash(inputs: Sequence[int]) -> int:
    return poseidon_hash([value % SCALAR_FIELD for value in inputs])


def _threshold_checks(w: Mapping[str, SignalValue]) -> Tuple[int, ...]:
    return tuple(
        greater_eq(w[private], w[public], bits, f"{private}>={public}")
        for private, public, bits in THRESHOLDS
    )


def _evaluate(w: Mapping[str, SignalValue]) -> Evaluation:
    checks = _threshold_checks(w)
    trend, _, _, remainder = regression_slope(w["mood_history"], w["mood_timestamps"])
    if not -TREND_OFFSET <= trend < TREND_OFFSET:
        raise ValidationError("mood_timestamps", "mood trend exceeds the representable range")

    intermediates: Dict[str, SignalValue] = {
        "trend": encode_field(trend),
        "trend_remainder": remainder,
    }
    outputs = {
        "achieved": and_all(checks),
        "achievement_hash": _hash(_achievement_inputs(w)),
        "consistency_proof": _hash(_consistency_inputs(w)),
        "improvement_proof": _hash(_improvement_inputs(w, intermediates["trend"])),
        "privacy_score": PRIVACY_TABLE[w["milestone_type"]],
    }
    return outputs, intermediates


def _regression_terms(
    cs: ConstraintSystem, moods: Sequence[LinearCombination], stamps: Sequence[LinearCombination]
) -> Tuple[LinearCombination, LinearCombination]:
    n = len(moods)
    sum_x = sum(stamps, LinearCombination())
    sum_y = sum(moods, LinearCombination())
    sum_xy = sum((cs.mul(x, y) for x, y in zip(stamps, moods)), LinearCombination())
    sum_xx = sum((cs.mul(x, x) for x in stamps), LinearCombination())
    numerator = n * sum_xy - cs.mul(sum_x, sum_y)
    denominator = n * sum_xx - cs.mul(sum_x, sum_x)
    return numerator, denominator


def _synthesize(
    cs: ConstraintSystem, s: Mapping[str, Any], w: Mapping[str, SignalValue]
) -> None:
    with cs.label("threshold_comparisons"):
        checks = [
            cs.greater_eq(s[private], s[public], bits)
            for private, public, bits in THRESHOLDS
        ]
    with cs.label("achieved_is_conjunction"):
        cs.assert_equal(s["achieved"], cs.and_all(checks))

    with cs.label("trend_regression"):
        numerator, denominator = _regression_terms(cs, s["mood_history"], s["mood_timestamps"])

    # numerator * factor == trend * denominator + remainder, 0 <= remainder < denominator;
    # a flat history (denominator 0) forces trend 0
    with cs.label("trend_division"):
        trend = cs.alloc(w.get("trend", 0))
        remainder = cs.alloc(w.get("trend_remainder", 0))
        cs.bits(trend + TREND_OFFSET, TREND_BITS)
        cs.bits(remainder, DIVISION_BITS)
        cs.bits(denominator, DIVISION_BITS)
        flat = cs.is_zero(denominator)
        cs.assert_equal(numerator * TREND_FACTOR, cs.mul(trend, denominator) + remainder)
        cs.assert_equal(cs.less_than(remainder, denominator, DIVISION_BITS), 1 - flat)
        cs.enforce(trend, flat, 0)

    with cs.label("achievement_hash_binding"):
        cs.assert_equal(s["achievement_hash"], poseidon_gadget(cs, _achievement_inputs(s)))
    with cs.label("consistency_proof_binding"):
        cs.assert_equal(s["consistency_proof"], poseidon_gadget(cs, _consistency_inputs(s)))
    with cs.label("improvement_proof_binding"):
        cs.assert_equal(
            s["improvement_proof"], poseidon_gadget(cs, _improvement_inputs(s, trend))
        )
    with cs.label("privacy_score_lookup"):
        cs.assert_equal(s["privacy_score"], cs.lookup(s["milestone_type"], PRIVACY_TABLE))


WELLNESS_MILESTONE = CircuitDefinition(
    circuit_id=CIRCUIT_ID,
    version=CIRCUIT_VERSION,
    private_signals=PRIVATE_SIGNALS,
    public_signals=PUBLIC_SIGNALS,
    output_signals=OUTPUT_SIGNALS,
    evaluate=_evaluate,
    synthesis=_synthesize,
)

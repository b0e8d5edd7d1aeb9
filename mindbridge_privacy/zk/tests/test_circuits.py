"""Tests for gadgets and the two wellness circuits."""

from __future__ import annotations

import pytest

from mindbridge_privacy.zk.circuits import (
    CIRCUITS,
    PEER_SUPPORT_ELIGIBILITY,
    WELLNESS_MILESTONE,
    get_circuit,
)
from mindbridge_privacy.zk.circuits.gadgets import (
    and_all,
    greater_eq,
    less_than,
    num2bits,
)
from mindbridge_privacy.zk.circuits.schema import decode_signed, encode_field
from mindbridge_privacy.zk.circuits.wellness_milestone import (
    PRIVACY_SCORES,
    MilestoneType,
    regression_slope,
)
from mindbridge_privacy.zk.config import SCALAR_FIELD
from mindbridge_privacy.zk.exceptions import (
    ConstraintViolation,
    UnknownCircuitError,
    ValidationError,
)
from mindbridge_privacy.zk.witness import build_witness


# ============================================================================
# GADGETS
# ============================================================================


def test_num2bits_little_endian() -> None:
    assert num2bits(6, 4) == [0, 1, 1, 0]


def test_num2bits_rejects_overflow() -> None:
    with pytest.raises(ConstraintViolation):
        num2bits(16, 4)


@pytest.mark.parametrize(
    "a,b,expected",
    [(0, 0, 0), (0, 1, 1), (1, 0, 0), (254, 255, 1), (255, 255, 0), (255, 0, 0)],
)
def test_less_than(a: int, b: int, expected: int) -> None:
    assert less_than(a, b, 8) == expected
    assert greater_eq(a, b, 8) == 1 - expected


def test_less_than_rejects_out_of_width_operand() -> None:
    with pytest.raises(ConstraintViolation):
        less_than(256, 3, 8)


def test_and_all() -> None:
    assert and_all([1, 1, 1]) == 1
    assert and_all([1, 0, 1]) == 0
    with pytest.raises(ConstraintViolation):
        and_all([1, 2])


def test_signed_encoding() -> None:
    assert decode_signed(encode_field(-5), 8) == -5
    assert decode_signed(encode_field(127), 8) == 127
    with pytest.raises(ValueError):
        decode_signed(1000, 8)


# ============================================================================
# REGISTRY
# ============================================================================


def test_registry_contains_both_circuits() -> None:
    assert set(CIRCUITS) == {"wellness_milestone", "peer_support_eligibility"}
    assert get_circuit("wellness_milestone") is WELLNESS_MILESTONE


@pytest.mark.parametrize("circuit_id", ["nope", "", None, 3])
def test_unknown_circuit_rejected(circuit_id) -> None:
    with pytest.raises(UnknownCircuitError):
        get_circuit(circuit_id)


def test_public_signal_order_is_outputs_then_inputs() -> None:
    assert WELLNESS_MILESTONE.public_signal_names == (
        "achieved",
        "achievement_hash",
        "consistency_proof",
        "improvement_proof",
        "privacy_score",
        "min_health_score",
        "min_sessions",
        "min_consistency_days",
        "min_improvement",
        "milestone_type",
        "verification_timestamp",
    )
    assert PEER_SUPPORT_ELIGIBILITY.n_public == 6


def test_circuit_digest_is_stable() -> None:
    assert WELLNESS_MILESTONE.digest == WELLNESS_MILESTONE.digest
    assert WELLNESS_MILESTONE.digest != PEER_SUPPORT_ELIGIBILITY.digest


# ============================================================================
# WELLNESS MILESTONE
# ============================================================================


def test_regression_slope_one_point_per_day() -> None:
    moods = [50 + i for i in range(30)]
    timestamps = [1_700_000_000 + i * 86400 for i in range(30)]
    trend, _, denominator, remainder = regression_slope(moods, timestamps)
    assert trend == 100
    assert denominator > 0
    assert remainder == 0


def test_regression_slope_falling_mood_is_negative() -> None:
    moods = [200 - 2 * i for i in range(30)]
    timestamps = [i * 86400 for i in range(30)]
    assert regression_slope(moods, timestamps)[0] == -200


def test_regression_slope_flat_timestamps() -> None:
    assert regression_slope([1, 2, 3], [7, 7, 7]) == (0, 0, 0, 0)


def test_scenario_a_achieved(wellness_inputs) -> None:
    private, public = wellness_inputs
    witness = build_witness(WELLNESS_MILESTONE, private, public)
    assert witness.outputs["achieved"] == 1
    assert witness.outputs["privacy_score"] == PRIVACY_SCORES[MilestoneType.MONTHLY_CONSISTENCY]
    assert witness.unsatisfied() == []


def test_scenario_a_lowered_score_not_achieved(wellness_inputs) -> None:
    private, public = wellness_inputs
    private["health_score"] = 70
    witness = build_witness(WELLNESS_MILESTONE, private, public)
    assert witness.outputs["achieved"] == 0
    assert witness.unsatisfied() == []


@pytest.mark.parametrize(
    "threshold",
    ["min_health_score", "min_sessions", "min_consistency_days", "min_improvement"],
)
def test_raising_threshold_never_flips_to_achieved(wellness_inputs, threshold: str) -> None:
    private, public = wellness_inputs
    private["health_score"] = 79  # below min_health_score: starts not achieved
    bits = 8 if threshold in ("min_health_score", "min_improvement") else 16
    for value in range(public[threshold], 1 << bits, (1 << bits) // 16):
        public[threshold] = value
        assert build_witness(WELLNESS_MILESTONE, private, public).outputs["achieved"] == 0


def test_monotonic_from_achieved(wellness_inputs) -> None:
    private, public = wellness_inputs
    seen = []
    for value in range(0, 256, 5):
        public["min_improvement"] = value
        seen.append(build_witness(WELLNESS_MILESTONE, private, public).outputs["achieved"])
    assert seen == sorted(seen, reverse=True)
    assert seen[0] == 1 and seen[-1] == 0


def test_hash_outputs_bound_to_secret(wellness_inputs) -> None:
    private, public = wellness_inputs
    first = build_witness(WELLNESS_MILESTONE, private, public).outputs
    private["user_secret"] += 1
    second = build_witness(WELLNESS_MILESTONE, private, public).outputs
    for name in ("achievement_hash", "consistency_proof", "improvement_proof"):
        assert first[name] != second[name]
    assert first["achieved"] == second["achieved"]


def test_tampered_witness_is_unsatisfied(wellness_inputs) -> None:
    private, public = wellness_inputs
    witness = build_witness(WELLNESS_MILESTONE, private, public)
    assignment = dict(witness.assignment)
    assignment["achieved"] = 0
    assert "achieved_is_conjunction" in WELLNESS_MILESTONE.unsatisfied(assignment)

    assignment = dict(witness.assignment)
    assignment["trend"] = encode_field(101)
    failed = WELLNESS_MILESTONE.unsatisfied(assignment)
    assert failed == ["trend_division", "improvement_proof_binding"]


def test_achievement_hash_covers_mood_series(wellness_inputs) -> None:
    private, public = wellness_inputs
    base = build_witness(WELLNESS_MILESTONE, private, public)

    moods = dict(private, mood_history=[51] + private["mood_history"][1:])
    shifted = list(private["mood_timestamps"])
    shifted[-1] += 1
    stamps = dict(private, mood_timestamps=shifted)
    for changed in (moods, stamps):
        witness = build_witness(WELLNESS_MILESTONE, changed, public)
        assert witness.outputs["achievement_hash"] != base.outputs["achievement_hash"]
        assert witness.unsatisfied() == []

    # a different mood series under the original hash
    forged = dict(base.assignment, mood_history=witness.assignment["mood_history"][:1] * 30)
    assert "achievement_hash_binding" in WELLNESS_MILESTONE.unsatisfied(forged)


@pytest.mark.parametrize("circuit", [WELLNESS_MILESTONE, PEER_SUPPORT_ELIGIBILITY])
def test_compiled_shape_is_value_independent(circuit, wellness_inputs, peer_support_inputs) -> None:
    private, public = wellness_inputs if circuit is WELLNESS_MILESTONE else peer_support_inputs
    witness = build_witness(circuit, private, public)
    cs = witness.constraint_system()
    compiled = circuit.compile()

    assert cs.public_values == witness.public_signals
    assert cs.num_variables == compiled.num_variables
    assert cs.digest() == compiled.digest()
    assert cs.unsatisfied() == []
    assert all(0 <= v < SCALAR_FIELD for v in cs.values)


def test_describe_reports_r1cs() -> None:
    description = PEER_SUPPORT_ELIGIBILITY.describe()
    compiled = PEER_SUPPORT_ELIGIBILITY.compile()
    assert description["r1cs"] == {
        "constraints": compiled.num_constraints,
        "variables": compiled.num_variables,
        "digest": compiled.digest(),
    }
    assert "credential_hash_binding" in description["constraints"]
    assert "range:interaction_history" in description["constraints"]


def test_out_of_range_assignment_reported() -> None:
    assignment = {s.name: 0 for s in WELLNESS_MILESTONE.all_signals}
    assignment["health_score"] = 300
    assert "range:health_score" in WELLNESS_MILESTONE.unsatisfied(assignment)


# ============================================================================
# PEER SUPPORT ELIGIBILITY
# ============================================================================


def test_peer_support_eligible(peer_support_inputs) -> None:
    private, public = peer_support_inputs
    witness = build_witness(PEER_SUPPORT_ELIGIBILITY, private, public)
    assert witness.outputs["quality_score"] == 6
    assert witness.outputs["eligible"] == 1
    assert witness.unsatisfied() == []


def test_peer_support_quality_floors(peer_support_inputs) -> None:
    private, public = peer_support_inputs
    private["interaction_history"] = [5, 6] + [-10] * 18
    witness = build_witness(PEER_SUPPORT_ELIGIBILITY, private, public)
    assert witness.outputs["quality_score"] == 5
    assert witness.unsatisfied() == []


def test_peer_support_below_quality_threshold(peer_support_inputs) -> None:
    private, public = peer_support_inputs
    public["quality_threshold"] = 7
    witness = build_witness(PEER_SUPPORT_ELIGIBILITY, private, public)
    assert witness.outputs["eligible"] == 0


def test_peer_support_no_positive_history(peer_support_inputs) -> None:
    private, public = peer_support_inputs
    private["interaction_history"] = [0] * 10 + [-4] * 10
    with pytest.raises(ValidationError) as exc:
        build_witness(PEER_SUPPORT_ELIGIBILITY, private, public)
    assert exc.value.field == "interaction_history"


def test_peer_support_credential_binds_thresholds(peer_support_inputs) -> None:
    private, public = peer_support_inputs
    first = build_witness(PEER_SUPPORT_ELIGIBILITY, private, public).outputs
    public["min_wellness"] = 61
    second = build_witness(PEER_SUPPORT_ELIGIBILITY, private, public).outputs
    assert first["credential_hash"] != second["credential_hash"]

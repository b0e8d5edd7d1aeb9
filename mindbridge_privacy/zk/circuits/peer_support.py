"""
Peer-support eligibility circuit.

A supporter proves experience, wellness and interaction quality clear the
public policy thresholds and receives an anonymous credential hash.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Tuple

from ..config import COMPARATOR_BITS, INTERACTION_HISTORY_LENGTH
from ..exceptions import ValidationError
from ..poseidon import poseidon_gadget, poseidon_hash
from ..r1cs import ConstraintSystem, LinearCombination, pack
from .gadgets import and_all, field_mul, field_sum, greater_eq
from .schema import (
    CircuitDefinition,
    Evaluation,
    SignalSpec,
    SignalValue,
    decode_signed,
)

CIRCUIT_ID = "peer_support_eligibility"
CIRCUIT_VERSION = 1

EXPERIENCE_BITS = 16

PRIVATE_SIGNALS = (
    SignalSpec("supporter_experience", bits=EXPERIENCE_BITS),
    SignalSpec("supporter_wellness", bits=COMPARATOR_BITS),
    SignalSpec(
        "interaction_history",
        bits=COMPARATOR_BITS,
        length=INTERACTION_HISTORY_LENGTH,
        signed=True,
    ),
    SignalSpec("supporter_secret"),
)

PUBLIC_SIGNALS = (
    SignalSpec("min_experience", bits=EXPERIENCE_BITS),
    SignalSpec("min_wellness", bits=COMPARATOR_BITS),
    SignalSpec("quality_threshold", bits=COMPARATOR_BITS),
)

OUTPUT_SIGNALS = (
    SignalSpec("eligible", bits=1),
    SignalSpec("quality_score", bits=COMPARATOR_BITS),
    SignalSpec("credential_hash"),
)


SIGNED_OFFSET = 1 << (COMPARATOR_BITS - 1)
COUNT_BITS = INTERACTION_HISTORY_LENGTH.bit_length()

# Fields of the credential hash, packed into one element
CREDENTIAL_FIELDS: Tuple[Tuple[str, int], ...] = (
    ("eligible", 1),
    ("quality_score", COMPARATOR_BITS),
    ("min_experience", EXPERIENCE_BITS),
    ("min_wellness", COMPARATOR_BITS),
    ("quality_threshold", COMPARATOR_BITS),
)


def _positive_flags(history) -> Tuple[int, ...]:
    return tuple(
        1 if decode_signed(entry, COMPARATOR_BITS) > 0 else 0
        for entry in history
    )


def _checks(w: Mapping[str, SignalValue]) -> Tuple[int, int, int]:
    return (
        greater_eq(w["supporter_experience"], w["min_experience"], EXPERIENCE_BITS),
        greater_eq(w["supporter_wellness"], w["min_wellness"], COMPARATOR_BITS),
        greater_eq(w["quality_score"], w["quality_threshold"], COMPARATOR_BITS),
    )


def _credential_inputs(s: Mapping[str, Any]) -> List[Any]:
    return [
        s["supporter_secret"],
        pack([(s[name], width) for name, width in CREDENTIAL_FIELDS]),
    ]


def _evaluate(w: Mapping[str, SignalValue]) -> Evaluation:
    flags = _positive_flags(w["interaction_history"])
    count = sum(flags)
    if count == 0:
        raise ValidationError(
            "interaction_history",
            "no strictly positive entries; quality score is undefined",
        )
    total = field_sum([
        field_mul(flag, entry)
        for flag, entry in zip(flags, w["interaction_history"])
    ])
    quality, remainder = divmod(total, count)

    full = dict(w, quality_score=quality)
    full["eligible"] = and_all(_checks(full))
    outputs = {
        "eligible": full["eligible"],
        "quality_score": quality,
        "credential_hash": poseidon_hash(_credential_inputs(full)),
    }
    return outputs, {"quality_remainder": remainder}


def _synthesize(
    cs: ConstraintSystem, s: Mapping[str, Any], w: Mapping[str, SignalValue]
) -> None:
    history = s["interaction_history"]
    with cs.label("positive_flags"):
        # entry + 128 >= 129  <=>  entry > 0
        flags = [
            cs.greater_eq(entry + SIGNED_OFFSET, SIGNED_OFFSET + 1, COMPARATOR_BITS)
            for entry in history
        ]
    with cs.label("positive_sum"):
        count = sum(flags, LinearCombination())
        total = sum(
            (cs.mul(flag, entry) for flag, entry in zip(flags, history)),
            LinearCombination(),
        )

    # quality * count + remainder == total, 0 <= remainder < count
    with cs.label("quality_division"):
        quality = s["quality_score"]
        remainder = cs.alloc(w.get("quality_remainder", 0))
        cs.bits(quality, COMPARATOR_BITS)
        cs.bits(remainder, COUNT_BITS)
        cs.assert_equal(cs.mul(quality, count) + remainder, total)
        cs.assert_equal(cs.less_than(remainder, count, COUNT_BITS), 1)

    with cs.label("eligibility_comparisons"):
        checks = [
            cs.greater_eq(s["supporter_experience"], s["min_experience"], EXPERIENCE_BITS),
            cs.greater_eq(s["supporter_wellness"], s["min_wellness"], COMPARATOR_BITS),
            cs.greater_eq(quality, s["quality_threshold"], COMPARATOR_BITS),
        ]
    with cs.label("eligible_is_conjunction"):
        cs.assert_equal(s["eligible"], cs.and_all(checks))
    with cs.label("credential_hash_binding"):
        cs.assert_equal(s["credential_hash"], poseidon_gadget(cs, _credential_inputs(s)))


PEER_SUPPORT_ELIGIBILITY = CircuitDefinition(
    circuit_id=CIRCUIT_ID,
    version=CIRCUIT_VERSION,
    private_signals=PRIVATE_SIGNALS,
    public_signals=PUBLIC_SIGNALS,
    output_signals=OUTPUT_SIGNALS,
    evaluate=_evaluate,
    synthesis=_synthesize,
)

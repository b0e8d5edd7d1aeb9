"""Tests for proof value types and their encodings."""

import cbor2
import pytest

from mindbridge_privacy.zk.exceptions import CryptographicError, ValidationError
from mindbridge_privacy.zk.types import (
    BatchRequest,
    Proof,
    ProofPoints,
    ProofRequest,
    signals_from_strings,
)


def _sample_proof() -> Proof:
    points = ProofPoints(a=(1, 2), b=((3, 4), (5, 6)), c=(7, 8))
    return Proof("peer_support_eligibility", points, (1, 6, 99), created_at=12.5)


def test_wire_format_uses_decimal_strings() -> None:
    document = _sample_proof().to_wire()
    assert document == {
        "circuitId": "peer_support_eligibility",
        "proof": {"a": ["1", "2"], "b": [["3", "4"], ["5", "6"]], "c": ["7", "8"]},
        "publicSignals": ["1", "6", "99"],
    }
    assert Proof.from_wire(document) == _sample_proof()


def test_from_wire_accepts_integers() -> None:
    document = {
        "circuitId": "x",
        "proof": {"a": [1, 2], "b": [[3, 4], [5, 6]], "c": [7, 8]},
        "publicSignals": [1],
    }
    assert Proof.from_wire(document).public_signals == (1,)


@pytest.mark.parametrize(
    "signal", ["-1", "0x10", "1.5", "", "\u00b2", "\u0663", True, None],
)
def test_from_wire_rejects_bad_signal(signal) -> None:
    document = _sample_proof().to_wire()
    document["publicSignals"][0] = signal
    with pytest.raises(ValidationError):
        Proof.from_wire(document)


def test_from_wire_rejects_bad_points() -> None:
    document = _sample_proof().to_wire()
    document["proof"]["b"] = [["3", "4"]]
    with pytest.raises(ValidationError):
        Proof.from_wire(document)
    document["proof"] = {"a": ["1", "2"]}
    with pytest.raises(ValidationError):
        Proof.from_wire(document)


def test_cbor_serialization() -> None:
    proof = _sample_proof()
    restored = Proof.deserialize(proof.serialize())
    assert restored == proof
    assert restored.created_at == 12.5


def test_deserialize_rejects_garbage() -> None:
    with pytest.raises(CryptographicError):
        Proof.deserialize(b"\xff\xff")
    with pytest.raises(ValidationError):
        Proof.deserialize(cbor2.dumps([1, 2, 3]))
    with pytest.raises(ValidationError):
        Proof.deserialize(cbor2.dumps({"v": 99}))


def test_requests_hide_private_inputs() -> None:
    request = ProofRequest("wellness_milestone", {"user_secret": 424242}, {"min_sessions": 1})
    assert "424242" not in repr(request)

    item = BatchRequest("c-1", "wellness_milestone", {"user_secret": 424242}, {})
    assert "424242" not in repr(item)
    assert item.request.circuit_id == "wellness_milestone"


def test_signals_from_strings() -> None:
    assert signals_from_strings(["0", "12", 5]) == (0, 12, 5)
    with pytest.raises(ValidationError):
        signals_from_strings(["-3"])

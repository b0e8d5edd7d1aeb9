"""
End-to-end acceptance scenarios for both subsystems.

A: wellness milestone achieved, then not achieved with a lowered score
B: average of encrypted moods, noisy release centred on the exact value
C: aggregating nothing is an error
D: concurrent releases against one budget never overspend
"""
import threading

import numpy as np
import pytest

from mindbridge_privacy.aggregation import (
    AggregationEngine,
    BudgetExceededError,
    BudgetLedger,
    EmptyInputError,
    LaplaceSampler,
    MetricSchema,
)
from mindbridge_privacy.zk import build_witness, get_circuit


def _mood_engine(cap=1.0, seed=None):
    return AggregationEngine(
        MetricSchema.averages("mood"),
        ledger=BudgetLedger(default_cap=cap),
        sampler=LaplaceSampler(seed=seed),
        table_bits=8,
    )


def _aggregate_moods(engine, moods):
    metrics = [engine.encrypt(f"user-{i}", {"mood": m}) for i, m in enumerate(moods)]
    return engine.aggregate(metrics)


def test_scenario_a_milestone(proof_service, wellness_inputs):
    private, public = wellness_inputs

    proof = proof_service.generate_proof("wellness_milestone", private, public)
    assert proof.public_signals[0] == 1
    assert proof_service.verify_proof("wellness_milestone", proof.to_wire())

    private["health_score"] = 70
    lowered = proof_service.generate_proof("wellness_milestone", private, public)
    assert lowered.public_signals[0] == 0
    assert lowered.public_signals[5:] == proof.public_signals[5:]


def test_scenario_a_public_signal_mutation(proof_service, wellness_inputs):
    private, public = wellness_inputs
    proof = proof_service.generate_proof("wellness_milestone", private, public)
    for index in (0, 1, 4, 10):
        signals = list(proof.public_signals)
        signals[index] = (signals[index] + 1) % (1 << 64)
        assert not proof_service.verify_proof("wellness_milestone", proof.points, signals)


def test_peer_support_round_trip(proof_service, peer_support_inputs):
    private, public = peer_support_inputs
    proof = proof_service.generate_proof("peer_support_eligibility", private, public)
    assert proof.public_signals[:2] == (1, 6)
    assert proof_service.verify_proof("peer_support_eligibility", proof)

    signals = list(proof.public_signals)
    signals[2] += 1  # credential hash
    assert not proof_service.verify_proof("peer_support_eligibility", proof.points, signals)


def test_scenario_b_average():
    engine = _mood_engine(cap=1000.0, seed=2024)
    aggregate = _aggregate_moods(engine, [60, 80, 100])
    assert aggregate["mood"].statistic == 80.0

    released = np.array([
        engine.release(aggregate, 1.0, "dashboard")["mood"].released_value
        for _ in range(400)
    ])
    noise = released - 80.0
    assert abs(noise.mean()) < 0.3
    assert noise.var() == pytest.approx(2.0, rel=0.35)
    assert len(set(released.tolist())) == len(released)


def test_scenario_c_empty():
    with pytest.raises(EmptyInputError):
        _mood_engine().aggregate([])


def test_scenario_d_concurrent_releases():
    engine = _mood_engine(cap=1.0)
    aggregate = _aggregate_moods(engine, [60, 80, 100])
    barrier = threading.Barrier(2)
    outcomes = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        try:
            engine.release(aggregate, 0.6, "dashboard")
            result = "released"
        except BudgetExceededError:
            result = "denied"
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["denied", "released"]
    assert float(engine.ledger.spent("dashboard")) == pytest.approx(0.6)
    assert engine.ledger.spent("dashboard") <= engine.ledger.cap_for("dashboard")


@pytest.mark.parametrize("threshold,private_field", [
    ("min_health_score", "health_score"),
    ("min_sessions", "session_count"),
    ("min_consistency_days", "consistency_days"),
    ("min_improvement", "improvement_score"),
])
def test_monotonic_in_each_threshold(wellness_inputs, threshold, private_field):
    circuit = get_circuit("wellness_milestone")
    private, public = wellness_inputs
    value = private[private_field]

    public[threshold] = value
    assert build_witness(circuit, private, public).outputs["achieved"] == 1
    public[threshold] = value + 1
    assert build_witness(circuit, private, public).outputs["achieved"] == 0

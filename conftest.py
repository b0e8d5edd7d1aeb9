"""Shared fixtures: one in-memory trusted setup per test session."""

from __future__ import annotations

from typing import Any, Dict, Tuple

import pytest

from mindbridge_privacy.zk import ProofService, context_from_setup, derive_secret

Inputs = Tuple[Dict[str, Any], Dict[str, Any]]

DAY = 86400
BASE_TIMESTAMP = 1_700_000_000


@pytest.fixture(scope="session")
def prover_context():
    return context_from_setup()


@pytest.fixture
def proof_service(prover_context) -> ProofService:
    return ProofService(prover_context, max_workers=2)


@pytest.fixture
def wellness_inputs() -> Inputs:
    """Scenario A inputs: every threshold met, mood rising one point a day."""
    private = {
        "health_score": 85,
        "session_count": 12,
        "consistency_days": 40,
        "improvement_score": 30,
        "user_secret": derive_secret(b"wellness-user-secret-material-01"),
        "mood_history": [50 + i for i in range(30)],
        "mood_timestamps": [BASE_TIMESTAMP + i * DAY for i in range(30)],
    }
    public = {
        "min_health_score": 80,
        "min_sessions": 10,
        "min_consistency_days": 30,
        "min_improvement": 20,
        "milestone_type": 2,
        "verification_timestamp": BASE_TIMESTAMP + 31 * DAY,
    }
    return private, public


@pytest.fixture
def peer_support_inputs() -> Inputs:
    history = [5, -3, 7, 0, 6] + [0] * 15
    private = {
        "supporter_experience": 120,
        "supporter_wellness": 70,
        "interaction_history": history,
        "supporter_secret": derive_secret(b"peer-supporter-secret-material-1"),
    }
    public = {
        "min_experience": 100,
        "min_wellness": 60,
        "quality_threshold": 5,
    }
    return private, public

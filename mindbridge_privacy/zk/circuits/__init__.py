"""Fixed circuit registry keyed by circuit id."""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

from ..exceptions import UnknownCircuitError
from .peer_support import PEER_SUPPORT_ELIGIBILITY
from .schema import CircuitDefinition, SignalSpec
from .wellness_milestone import WELLNESS_MILESTONE, MilestoneType

CIRCUITS: Mapping[str, CircuitDefinition] = MappingProxyType({
    WELLNESS_MILESTONE.circuit_id: WELLNESS_MILESTONE,
    PEER_SUPPORT_ELIGIBILITY.circuit_id: PEER_SUPPORT_ELIGIBILITY,
})


def get_circuit(circuit_id: str) -> CircuitDefinition:
    """Look up a circuit definition; unknown ids are rejected, never guessed."""
    try:
        return CIRCUITS[circuit_id]
    except (KeyError, TypeError):
        raise UnknownCircuitError(f"unknown circuit id: {circuit_id!r}") from None


__all__ = [
    "CIRCUITS",
    "CircuitDefinition",
    "MilestoneType",
    "PEER_SUPPORT_ELIGIBILITY",
    "SignalSpec",
    "WELLNESS_MILESTONE",
    "get_circuit",
]

"""Zero-knowledge wellness proofs: circuits, witness builder and proof service."""
from __future__ import annotations

from .artifacts import (
    LoadedCircuit,
    ProverContext,
    context_from_setup,
    load_context,
    setup_circuits,
    write_artifacts,
)
from .cache import ProofCache
from .circuits import CIRCUITS, MilestoneType, get_circuit
from .exceptions import (
    ArtifactError,
    CircuitUnavailableError,
    CryptographicError,
    PrivacyProtocolError,
    ProofGenerationError,
    SelfVerificationFailure,
    UnknownCircuitError,
    ValidationError,
)
from .service import ProofService
from .types import BatchRequest, BatchResult, Proof, ProofPoints, ProofRequest
from .witness import Witness, build_witness, derive_secret

__all__ = [
    "ArtifactError",
    "BatchRequest",
    "BatchResult",
    "CIRCUITS",
    "CircuitUnavailableError",
    "CryptographicError",
    "LoadedCircuit",
    "MilestoneType",
    "PrivacyProtocolError",
    "Proof",
    "ProofCache",
    "ProofGenerationError",
    "ProofPoints",
    "ProofRequest",
    "ProofService",
    "ProverContext",
    "SelfVerificationFailure",
    "UnknownCircuitError",
    "ValidationError",
    "Witness",
    "build_witness",
    "context_from_setup",
    "derive_secret",
    "get_circuit",
    "load_context",
    "setup_circuits",
    "write_artifacts",
]

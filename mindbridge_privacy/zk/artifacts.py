"""
Circuit artifact persistence and the immutable prover context.

Layout, one directory per circuit version::

    <base>/<circuit_id>/v<version>/circuit.cbor
    <base>/<circuit_id>/v<version>/proving_key.cbor
    <base>/<circuit_id>/v<version>/verification_key.json

The base directory comes from the caller, else ``MINDBRIDGE_ARTIFACTS_DIR``,
else ``./artifacts``. A circuit whose artifacts are missing, corrupt or do
not match its definition is disabled; other circuits still load.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

import cbor2
import structlog

from .circuits import CIRCUITS, CircuitDefinition
from .config import (
    ARTIFACT_FORMAT_VERSION,
    ARTIFACTS_ENV_VAR,
    CIRCUIT_FILENAME,
    PROVING_KEY_FILENAME,
    VERIFICATION_KEY_FILENAME,
)
from .exceptions import ArtifactError, CircuitUnavailableError, UnknownCircuitError
from .groth16 import ProvingKey, VerificationKey, trusted_setup
from .security import RandomnessSource

logger = structlog.get_logger()

MAX_ARTIFACT_BYTES = 16 * 1024 * 1024


@dataclass(frozen=True)
class LoadedCircuit:
    definition: CircuitDefinition
    proving_key: ProvingKey = field(repr=False)
    verification_key: VerificationKey = field(repr=False)


@dataclass(frozen=True)
class ProverContext:
    """
    Read-only view of every usable circuit, built once at startup.

    Attributes:
        circuits: circuit_id -> LoadedCircuit for circuits that loaded
        failures: circuit_id -> reason for circuits that were disabled
        base_dir: Where artifacts were read from (None when built in memory)
    """

    circuits: Mapping[str, LoadedCircuit]
    failures: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    base_dir: Optional[Path] = None

    def get(self, circuit_id: str) -> LoadedCircuit:
        """
        Raises:
            CircuitUnavailableError: Known circuit whose artifacts failed
            UnknownCircuitError: Id not in the registry
        """
        loaded = self.circuits.get(circuit_id) if isinstance(circuit_id, str) else None
        if loaded is not None:
            return loaded
        if circuit_id in self.failures:
            raise CircuitUnavailableError(circuit_id, self.failures[circuit_id])
        raise UnknownCircuitError(f"unknown circuit id: {circuit_id!r}")

    @property
    def available(self) -> Tuple[str, ...]:
        return tuple(sorted(self.circuits))


def _freeze(
    circuits: Dict[str, LoadedCircuit],
    failures: Dict[str, str],
    base_dir: Optional[Path],
) -> ProverContext:
    return ProverContext(
        circuits=MappingProxyType(dict(circuits)),
        failures=MappingProxyType(dict(failures)),
        base_dir=base_dir,
    )


def resolve_base_dir(base_dir: str | Path | None = None) -> Path:
    if base_dir:
        return Path(base_dir)
    return Path(os.getenv(ARTIFACTS_ENV_VAR, "artifacts"))


def circuit_dir(circuit: CircuitDefinition, base_dir: str | Path | None = None) -> Path:
    return resolve_base_dir(base_dir) / circuit.circuit_id / f"v{circuit.version}"


# ============================================================================
# WRITE
# ============================================================================


def write_artifacts(
    circuit: CircuitDefinition,
    proving_key: ProvingKey,
    verification_key: VerificationKey,
    base_dir: str | Path | None = None,
) -> Path:
    """Persist one circuit's setup output; returns the version directory."""
    if proving_key.vk_digest != verification_key.digest:
        raise ArtifactError(f"{circuit.circuit_id}: proving key does not match verification key")
    target = circuit_dir(circuit, base_dir)
    target.mkdir(parents=True, exist_ok=True)

    descriptor = {
        "v": ARTIFACT_FORMAT_VERSION,
        "descriptor": circuit.describe(),
        "digest": circuit.digest,
    }
    (target / CIRCUIT_FILENAME).write_bytes(cbor2.dumps(descriptor, canonical=True))
    (target / PROVING_KEY_FILENAME).write_bytes(proving_key.serialize())
    (target / VERIFICATION_KEY_FILENAME).write_text(
        json.dumps(verification_key.to_json(), indent=2), encoding="utf-8"
    )
    logger.info("artifacts_written", circuit_id=circuit.circuit_id, path=str(target))
    return target


def setup_circuits(
    base_dir: str | Path | None = None,
    circuits: Mapping[str, CircuitDefinition] = CIRCUITS,
    rng: Optional[RandomnessSource] = None,
) -> ProverContext:
    """Run the trusted setup for every circuit, persist it, return the context."""
    rng = rng or RandomnessSource()
    loaded: Dict[str, LoadedCircuit] = {}
    for circuit_id, circuit in circuits.items():
        pk, vk = trusted_setup(circuit, rng)
        write_artifacts(circuit, pk, vk, base_dir)
        loaded[circuit_id] = LoadedCircuit(circuit, pk, vk)
    return _freeze(loaded, {}, resolve_base_dir(base_dir))


def context_from_setup(
    circuits: Mapping[str, CircuitDefinition] = CIRCUITS,
    rng: Optional[RandomnessSource] = None,
) -> ProverContext:
    """In-memory setup without persistence (development and tests)."""
    rng = rng or RandomnessSource()
    loaded = {}
    for circuit_id, circuit in circuits.items():
        pk, vk = trusted_setup(circuit, rng)
        loaded[circuit_id] = LoadedCircuit(circuit, pk, vk)
    return _freeze(loaded, {}, None)


# ============================================================================
# LOAD
# ============================================================================


def _read_bytes(path: Path) -> bytes:
    if not path.is_file():
        raise ArtifactError(f"missing artifact: {path}")
    if path.stat().st_size > MAX_ARTIFACT_BYTES:
        raise ArtifactError(f"artifact too large: {path}")
    return path.read_bytes()


def load_circuit(
    circuit: CircuitDefinition, base_dir: str | Path | None = None
) -> LoadedCircuit:
    """
    Load and cross-check one circuit's artifacts.

    Raises:
        ArtifactError: If any file is missing, corrupt or mismatched
    """
    source = circuit_dir(circuit, base_dir)

    try:
        descriptor = cbor2.loads(_read_bytes(source / CIRCUIT_FILENAME))
    except cbor2.CBORDecodeError as e:
        raise ArtifactError(f"corrupt circuit descriptor: {e}") from e
    if not isinstance(descriptor, dict) or descriptor.get("v") != ARTIFACT_FORMAT_VERSION:
        raise ArtifactError("unsupported circuit descriptor")
    if descriptor.get("digest") != circuit.digest:
        raise ArtifactError("circuit descriptor does not match definition")

    proving_key = ProvingKey.deserialize(_read_bytes(source / PROVING_KEY_FILENAME))

    try:
        vk_data = json.loads(_read_bytes(source / VERIFICATION_KEY_FILENAME))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ArtifactError(f"corrupt verification key: {e}") from e
    if not isinstance(vk_data, dict):
        raise ArtifactError("corrupt verification key")
    verification_key = VerificationKey.from_json(vk_data)

    if verification_key.circuit_id != circuit.circuit_id:
        raise ArtifactError("verification key belongs to another circuit")
    if verification_key.n_public != circuit.n_public:
        raise ArtifactError(
            f"verification key expects {verification_key.n_public} public signals, "
            f"circuit declares {circuit.n_public}"
        )
    if proving_key.circuit_id != circuit.circuit_id:
        raise ArtifactError("proving key belongs to another circuit")
    if proving_key.vk_digest != verification_key.digest:
        raise ArtifactError("proving key does not match verification key")
    if proving_key.r1cs_digest != circuit.compile().digest():
        raise ArtifactError("proving key was generated for a different constraint system")

    return LoadedCircuit(circuit, proving_key, verification_key)


def load_context(
    base_dir: str | Path | None = None,
    circuits: Mapping[str, CircuitDefinition] = CIRCUITS,
) -> ProverContext:
    """Load every registered circuit, disabling the ones that fail."""
    root = resolve_base_dir(base_dir)
    loaded: Dict[str, LoadedCircuit] = {}
    failures: Dict[str, str] = {}
    for circuit_id, circuit in circuits.items():
        try:
            loaded[circuit_id] = load_circuit(circuit, root)
        except (ArtifactError, OSError) as e:
            failures[circuit_id] = str(e)
            logger.error("circuit_disabled", circuit_id=circuit_id, reason=str(e))
        else:
            logger.info("circuit_loaded", circuit_id=circuit_id, version=circuit.version)
    return _freeze(loaded, failures, root)

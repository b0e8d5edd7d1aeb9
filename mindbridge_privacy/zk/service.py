"""
Proof service: the single entry point for generating and verifying proofs.

Pipeline for ``generate_proof``::

    validate -> fingerprint -> cache? -> witness -> constraint check
             -> prove -> self-verify -> cache -> return

A proof is only ever returned, or cached, after it verified against the
circuit's verification key.
"""

from __future__ import annotations

import time
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import cbor2
import structlog
import trio

from . import groth16
from .artifacts import LoadedCircuit, ProverContext
from .cache import Clock, ProofCache
from .config import DEFAULT_PROVER_WORKERS, MAX_PROOF_BATCH_SIZE
from .exceptions import (
    ConstraintViolation,
    PrivacyProtocolError,
    ProofGenerationError,
    SelfVerificationFailure,
    ValidationError,
)
from .security import RandomnessSource, keyed_fingerprint
from .types import BatchRequest, BatchResult, Proof, ProofPoints
from .witness import build_witness, validate_inputs

logger = structlog.get_logger()

PresentedProof = Union[Proof, ProofPoints, Mapping[str, Any]]


class ProofService:
    """
    Generates, caches and verifies proofs for the circuits in a ProverContext.

    Args:
        context: Loaded circuits and keys (immutable)
        cache: Proof cache; a default TTL cache is created when omitted
        max_workers: Concurrent proving threads for batch requests
        rng: Randomness for proof blinding and the fingerprint key
        clock: Time source for the default cache
    """

    def __init__(
        self,
        context: ProverContext,
        cache: Optional[ProofCache] = None,
        max_workers: int = DEFAULT_PROVER_WORKERS,
        rng: Optional[RandomnessSource] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be positive")
        self._context = context
        self._cache = cache if cache is not None else ProofCache(clock=clock)
        self._rng = rng or RandomnessSource()
        self._fingerprint_key = self._rng.get_random_bytes(32)
        self.max_workers = max_workers

    @property
    def context(self) -> ProverContext:
        return self._context

    def available_circuits(self) -> Tuple[str, ...]:
        return self._context.available

    def cache_stats(self) -> Dict[str, int]:
        return self._cache.stats()

    # ------------------------------------------------------------------
    # generation
    # ------------------------------------------------------------------

    def _fingerprint(
        self,
        loaded: LoadedCircuit,
        private_inputs: Mapping[str, Any],
        public_inputs: Mapping[str, Any],
    ) -> str:
        circuit = loaded.definition
        private = validate_inputs(circuit.private_signals, private_inputs, "private")
        public = validate_inputs(circuit.public_signals, public_inputs, "public")
        payload = cbor2.dumps(
            [circuit.circuit_id, circuit.version, private, public], canonical=True
        )
        return keyed_fingerprint(self._fingerprint_key, payload)

    def generate_proof(
        self,
        circuit_id: str,
        private_inputs: Mapping[str, Any],
        public_inputs: Mapping[str, Any],
    ) -> Proof:
        """
        Generate (or return the cached) proof for one request.

        Raises:
            UnknownCircuitError: Unknown or unavailable circuit id
            ValidationError: Inputs missing, mistyped or out of range
            ProofGenerationError: The witness or prover failed unexpectedly
            SelfVerificationFailure: The new proof did not verify
        """
        loaded = self._context.get(circuit_id)
        fingerprint = self._fingerprint(loaded, private_inputs, public_inputs)

        cached = self._cache.get(fingerprint)
        if cached is not None:
            logger.debug("proof_cache_hit", circuit_id=circuit_id)
            return cached

        try:
            witness = build_witness(loaded.definition, private_inputs, public_inputs)
        except ConstraintViolation as e:
            logger.error("witness_evaluation_failed", circuit_id=circuit_id, constraint=e.constraint)
            raise ProofGenerationError(f"{circuit_id}: witness evaluation failed") from e

        cs = witness.constraint_system()
        failed = cs.unsatisfied()
        if failed:
            logger.error("witness_unsatisfied", circuit_id=circuit_id, constraints=failed)
            raise ProofGenerationError(
                f"{circuit_id}: witness violates {', '.join(failed)}"
            )

        try:
            points = groth16.prove(loaded.proving_key, cs, self._rng)
        except (ArithmeticError, TypeError, ValueError) as e:
            logger.error("proof_generation_failed", circuit_id=circuit_id, error=type(e).__name__)
            raise ProofGenerationError(f"{circuit_id}: prover failed") from e

        if not groth16.verify(loaded.verification_key, points, witness.public_signals):
            logger.critical("proof_self_verification_failed", circuit_id=circuit_id)
            raise SelfVerificationFailure(circuit_id)

        proof = Proof(
            circuit_id=circuit_id,
            points=points,
            public_signals=witness.public_signals,
            fingerprint=fingerprint,
            created_at=time.time(),
        )
        logger.info("proof_generated", circuit_id=circuit_id)
        return self._cache.put(fingerprint, proof)

    # ------------------------------------------------------------------
    # verification
    # ------------------------------------------------------------------

    def verify_proof(
        self,
        circuit_id: str,
        proof: PresentedProof,
        public_signals: Optional[Sequence[Any]] = None,
    ) -> bool:
        """
        Verify a presented proof.

        ``proof`` may be a Proof, bare ProofPoints or the JSON wire
        document. When ``public_signals`` is omitted the proof's own signals
        are used.

        Returns:
            False for any invalid or malformed proof or signal vector

        Raises:
            UnknownCircuitError: Unknown or unavailable circuit id
        """
        loaded = self._context.get(circuit_id)

        if isinstance(proof, Mapping):
            try:
                proof = Proof.from_wire(proof)
            except ValidationError:
                logger.info("proof_rejected", circuit_id=circuit_id, reason="malformed")
                return False

        if isinstance(proof, Proof):
            if proof.circuit_id != circuit_id:
                logger.info("proof_rejected", circuit_id=circuit_id, reason="circuit_mismatch")
                return False
            points = proof.points
            if public_signals is None:
                public_signals = proof.public_signals
        elif isinstance(proof, ProofPoints):
            points = proof
        else:
            return False

        if public_signals is None or isinstance(public_signals, (str, bytes)):
            return False
        try:
            signals = list(public_signals)
        except TypeError:
            return False

        ok = groth16.verify(loaded.verification_key, points, signals)
        if not ok:
            logger.info("proof_rejected", circuit_id=circuit_id, reason="verification_failed")
        return ok

    # ------------------------------------------------------------------
    # batches
    # ------------------------------------------------------------------

    async def generate_batch(self, requests: Sequence[BatchRequest]) -> List[BatchResult]:
        """
        Prove every request concurrently on at most ``max_workers`` threads.

        Results come back in input order with the caller's correlation ids.
        A failing item never affects the others. Cancelling the batch skips
        items that have not started.
        """
        requests = list(requests)
        if len(requests) > MAX_PROOF_BATCH_SIZE:
            raise ValidationError(
                "requests", f"batch exceeds {MAX_PROOF_BATCH_SIZE} items"
            )
        results: List[Optional[BatchResult]] = [None] * len(requests)
        limiter = trio.CapacityLimiter(self.max_workers)

        async with trio.open_nursery() as nursery:
            for index, item in enumerate(requests):
                nursery.start_soon(self._run_item, index, item, results, limiter)

        failed = sum(1 for r in results if not r.ok)
        logger.info("proof_batch_complete", total=len(results), failed=failed)
        return results

    async def _run_item(
        self,
        index: int,
        item: BatchRequest,
        results: List[Optional[BatchResult]],
        limiter: trio.CapacityLimiter,
    ) -> None:
        try:
            proof = await trio.to_thread.run_sync(
                self.generate_proof,
                item.circuit_id,
                item.private_inputs,
                item.public_inputs,
                limiter=limiter,
            )
        except SelfVerificationFailure as e:
            logger.critical("batch_item_fatal", correlation_id=item.correlation_id)
            results[index] = _failure(item, e, fatal=True)
        except PrivacyProtocolError as e:
            logger.warning(
                "batch_item_failed",
                correlation_id=item.correlation_id,
                error_type=type(e).__name__,
            )
            results[index] = _failure(item, e)
        else:
            results[index] = BatchResult(item.correlation_id, ok=True, proof=proof)

    def run_batch(self, requests: Sequence[BatchRequest]) -> List[BatchResult]:
        """Synchronous wrapper around ``generate_batch``."""
        return trio.run(self.generate_batch, list(requests))


def _failure(item: BatchRequest, error: Exception, fatal: bool = False) -> BatchResult:
    return BatchResult(
        correlation_id=item.correlation_id,
        ok=False,
        error=str(error),
        error_type=type(error).__name__,
        fatal=fatal,
    )


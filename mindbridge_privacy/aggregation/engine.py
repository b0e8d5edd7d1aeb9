"""
Aggregation engine: encrypt per-user metric vectors, sum them under
encryption, decrypt only the aggregate and release it through the
differential-privacy budget gate.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Sequence

import structlog

from ..zk.security import RandomnessSource
from .budget import BudgetLedger, PrivacyBudget, to_decimal
from .config import (
    DEFAULT_DECRYPTION_TABLE_BITS,
    FIELD_KIND_AVERAGE,
    FIELD_KINDS,
    MAX_METRIC_VALUE,
    confidence_half_width,
)
from .curve import CurveParameters, get_cached_curve_params
from .elgamal import (
    BabyStepTable,
    Ciphertext,
    KeyPair,
    PublicKey,
    decrypt,
    encrypt,
    get_baby_step_table,
    homomorphic_sum,
)
from .errors import EmptyInputError, KeyMismatchError, MetricSchemaError
from .noise import LaplaceSampler

logger = structlog.get_logger()


@dataclass(frozen=True)
class MetricSchema:
    """Field name -> kind ("average" or "count")."""

    fields: Mapping[str, str]

    def __post_init__(self) -> None:
        if not self.fields:
            raise MetricSchemaError("schema needs at least one field")
        for name, kind in self.fields.items():
            if not isinstance(name, str) or not name:
                raise MetricSchemaError("field names must be non-empty strings")
            if kind not in FIELD_KINDS:
                raise MetricSchemaError(f"{name}: unknown field kind {kind!r}")
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))

    @classmethod
    def averages(cls, *names: str) -> "MetricSchema":
        return cls({name: FIELD_KIND_AVERAGE for name in names})

    def check(self, vector: Mapping[str, Any]) -> None:
        if not isinstance(vector, Mapping):
            raise MetricSchemaError("metric vector must be a mapping")
        unknown = set(vector) - set(self.fields)
        if unknown:
            raise MetricSchemaError(f"unknown metric fields: {sorted(unknown)}")
        missing = set(self.fields) - set(vector)
        if missing:
            raise MetricSchemaError(f"missing metric fields: {sorted(missing)}")


@dataclass(frozen=True)
class EncryptedMetric:
    """One user's metric vector, every field under the same public key."""

    user_id: str
    ciphertexts: Mapping[str, Ciphertext] = field(repr=False)
    key_id: str


@dataclass(frozen=True)
class AggregateResult:
    """
    One aggregated metric field.

    ``released_value``, ``epsilon_consumed`` and ``confidence_half_width``
    are only set on results returned by ``release``.
    """

    metric: str
    kind: str
    ciphertext: Ciphertext = field(repr=False)
    exact_sum: int = field(repr=False)
    user_count: int
    statistic: float = field(repr=False)
    epsilon_consumed: float = 0.0
    released_value: Optional[float] = None
    confidence_half_width: Optional[float] = None


@dataclass(frozen=True)
class Aggregate:
    results: Mapping[str, AggregateResult]
    user_count: int
    key_id: str

    def __getitem__(self, metric: str) -> AggregateResult:
        return self.results[metric]


@dataclass(frozen=True)
class Release:
    consumer_id: str
    epsilon: float
    results: Mapping[str, AggregateResult]
    budget: PrivacyBudget

    def __getitem__(self, metric: str) -> AggregateResult:
        return self.results[metric]

    def values(self) -> Dict[str, float]:
        return {name: r.released_value for name, r in self.results.items()}


def encrypt_metric(
    user_id: str,
    vector: Mapping[str, int],
    schema: MetricSchema,
    public_key: PublicKey,
    params: Optional[CurveParameters] = None,
    rng: Optional[RandomnessSource] = None,
) -> EncryptedMetric:
    """Encrypt a metric vector under any aggregator public key."""
    if not isinstance(user_id, str) or not user_id:
        raise MetricSchemaError("user_id must be a non-empty string")
    schema.check(vector)
    ciphertexts = {}
    for name in schema.fields:
        try:
            ciphertexts[name] = encrypt(vector[name], public_key, params, rng)
        except MetricSchemaError as e:
            raise MetricSchemaError(f"{name}: {e}") from e
    return EncryptedMetric(
        user_id=user_id,
        ciphertexts=MappingProxyType(ciphertexts),
        key_id=public_key.key_id,
    )


class AggregationEngine:
    """
    Homomorphic aggregation with a differential-privacy release gate.

    Args:
        schema: Metric fields and how each is summarised
        keypair: Aggregator key pair (generated when omitted)
        ledger: Privacy budget ledger shared by all releases
        sampler: Laplace noise source
        table_bits: Baby-step table size for decryption (2^bits points)
    """

    def __init__(
        self,
        schema: MetricSchema,
        keypair: Optional[KeyPair] = None,
        ledger: Optional[BudgetLedger] = None,
        sampler: Optional[LaplaceSampler] = None,
        table_bits: int = DEFAULT_DECRYPTION_TABLE_BITS,
        params: Optional[CurveParameters] = None,
        rng: Optional[RandomnessSource] = None,
    ) -> None:
        self.schema = schema
        self._params = params or get_cached_curve_params()
        self._rng = rng or RandomnessSource()
        self._keypair = keypair or KeyPair.generate(self._params, self._rng)
        self.ledger = ledger or BudgetLedger()
        self._sampler = sampler or LaplaceSampler()
        self._table_bits = table_bits
        self._table: Optional[BabyStepTable] = None

    @property
    def public_key(self) -> PublicKey:
        return self._keypair.public

    def _decryption_table(self) -> BabyStepTable:
        if self._table is None:
            self._table = get_baby_step_table(self._table_bits)
        return self._table

    def encrypt(self, user_id: str, vector: Mapping[str, int]) -> EncryptedMetric:
        """
        Encrypt one user's metric vector field by field.

        Raises:
            MetricSchemaError: Unknown or missing field, or value outside
                [0, 2^32 - 1]
        """
        return encrypt_metric(
            user_id, vector, self.schema, self.public_key, self._params, self._rng
        )

    def aggregate(self, metrics: Sequence[EncryptedMetric]) -> Aggregate:
        """
        Sum every field across users and decrypt each sum exactly once.

        Raises:
            EmptyInputError: No metrics given
            KeyMismatchError: Any ciphertext not under this engine's key
            MetricSchemaError: Duplicate users or fields not matching the schema
        """
        metrics = list(metrics)
        if not metrics:
            raise EmptyInputError("cannot aggregate an empty list of metrics")

        seen = set()
        for metric in metrics:
            if metric.key_id != self.public_key.key_id:
                raise KeyMismatchError(
                    f"metric for key {metric.key_id} cannot be aggregated under "
                    f"{self.public_key.key_id}"
                )
            if metric.user_id in seen:
                raise MetricSchemaError("duplicate metrics for one user")
            seen.add(metric.user_id)
            self.schema.check(metric.ciphertexts)

        count = len(metrics)
        bound = count * MAX_METRIC_VALUE
        table = self._decryption_table()
        results = {}
        for name, kind in self.schema.fields.items():
            summed = homomorphic_sum(m.ciphertexts[name] for m in metrics)
            exact = decrypt(summed, self._keypair, bound, table)
            statistic = exact / count if kind == FIELD_KIND_AVERAGE else float(exact)
            results[name] = AggregateResult(
                metric=name,
                kind=kind,
                ciphertext=summed,
                exact_sum=exact,
                user_count=count,
                statistic=statistic,
            )

        logger.info("metrics_aggregated", users=count, fields=len(results))
        return Aggregate(
            results=MappingProxyType(results),
            user_count=count,
            key_id=self.public_key.key_id,
        )

    def release(self, aggregate: Aggregate, epsilon: float, consumer_id: str) -> Release:
        """
        Release every statistic with Laplace(0, 1/epsilon) noise.

        Epsilon is charged once per release, before any noise is drawn.

        Raises:
            BudgetExceededError: Insufficient budget; nothing is released
            KeyMismatchError: Aggregate produced under another key
            ValueError: Epsilon is not a positive finite number
        """
        if aggregate.key_id != self.public_key.key_id:
            raise KeyMismatchError("aggregate was produced under another key")
        epsilon = float(to_decimal(epsilon, "epsilon"))
        budget = self.ledger.charge(consumer_id, epsilon)

        half_width = confidence_half_width(epsilon)
        released = {
            name: replace(
                result,
                epsilon_consumed=epsilon,
                released_value=result.statistic + self._sampler.sample(epsilon),
                confidence_half_width=half_width,
            )
            for name, result in aggregate.results.items()
        }
        logger.info(
            "aggregate_released",
            consumer_id=consumer_id,
            epsilon=epsilon,
            fields=len(released),
        )
        return Release(
            consumer_id=consumer_id,
            epsilon=epsilon,
            results=MappingProxyType(released),
            budget=budget,
        )

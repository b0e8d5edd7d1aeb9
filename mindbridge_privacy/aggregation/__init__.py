"""Homomorphic aggregation of encrypted wellness metrics with DP release."""
from __future__ import annotations

from .budget import BudgetLedger, PrivacyBudget
from .elgamal import Ciphertext, KeyPair, PublicKey, decrypt, encrypt, homomorphic_sum
from .engine import (
    Aggregate,
    AggregateResult,
    AggregationEngine,
    EncryptedMetric,
    MetricSchema,
    Release,
    encrypt_metric,
)
from .errors import (
    AggregationError,
    BudgetExceededError,
    DecryptionRangeError,
    EmptyInputError,
    KeyMismatchError,
    MetricSchemaError,
)
from .noise import LaplaceSampler, laplace_inverse_cdf

__all__ = [
    "Aggregate",
    "AggregateResult",
    "AggregationEngine",
    "AggregationError",
    "BudgetExceededError",
    "BudgetLedger",
    "Ciphertext",
    "DecryptionRangeError",
    "EmptyInputError",
    "EncryptedMetric",
    "KeyMismatchError",
    "KeyPair",
    "LaplaceSampler",
    "MetricSchema",
    "MetricSchemaError",
    "PrivacyBudget",
    "PublicKey",
    "Release",
    "decrypt",
    "encrypt",
    "encrypt_metric",
    "homomorphic_sum",
    "laplace_inverse_cdf",
]

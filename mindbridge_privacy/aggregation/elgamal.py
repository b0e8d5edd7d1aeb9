"""
Exponential ElGamal over secp256k1.

    Enc(m) = (r*G, m*G + r*PK)
    Enc(a) + Enc(b) = Enc(a + b)

Decryption recovers m*G and solves the small discrete log with a
baby-step giant-step search bounded by the known plaintext range.
"""

import hashlib
import math
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional

import cbor2

from ..zk.security import RandomnessSource
from .config import DEFAULT_DECRYPTION_TABLE_BITS, MAX_DECRYPTION_TABLE_BITS, MAX_METRIC_VALUE
from .curve import CurveParameters, get_cached_curve_params, point_key
from .errors import AggregationError, DecryptionRangeError, KeyMismatchError, MetricSchemaError

KEY_ID_BYTES = 8


@dataclass(frozen=True)
class PublicKey:
    point: Any = field(repr=False, compare=False)
    key_id: str

    @classmethod
    def from_point(cls, point) -> "PublicKey":
        digest = hashlib.sha256(point_key(point)).digest()
        return cls(point=point, key_id=digest[:KEY_ID_BYTES].hex())

    def export(self) -> bytes:
        return point_key(self.point)


@dataclass(frozen=True)
class KeyPair:
    """Aggregator key pair; the secret never leaves the engine."""

    public: PublicKey
    secret: int = field(repr=False)

    @classmethod
    def generate(
        cls,
        params: Optional[CurveParameters] = None,
        rng: Optional[RandomnessSource] = None,
    ) -> "KeyPair":
        params = params or get_cached_curve_params()
        rng = rng or RandomnessSource()
        secret = 1 + rng.get_random_scalar(params.order - 1)
        return cls(public=PublicKey.from_point(params.mul(secret)), secret=secret)


@dataclass(frozen=True)
class Ciphertext:
    c1: Any = field(repr=False)
    c2: Any = field(repr=False)
    key_id: str

    def __add__(self, other: "Ciphertext") -> "Ciphertext":
        if not isinstance(other, Ciphertext):
            return NotImplemented
        if other.key_id != self.key_id:
            raise KeyMismatchError(
                f"cannot add ciphertexts under keys {self.key_id} and {other.key_id}"
            )
        return Ciphertext(self.c1 + other.c1, self.c2 + other.c2, self.key_id)

    def serialize(self) -> bytes:
        return cbor2.dumps({"k": self.key_id, "c1": point_key(self.c1), "c2": point_key(self.c2)})

    @classmethod
    def deserialize(cls, data: bytes, params: Optional[CurveParameters] = None) -> "Ciphertext":
        params = params or get_cached_curve_params()
        try:
            obj = cbor2.loads(data)
        except Exception as e:
            raise AggregationError(f"Failed to decode ciphertext: {e}") from e
        if not isinstance(obj, dict) or not {"k", "c1", "c2"} <= obj.keys():
            raise AggregationError("Invalid ciphertext format")
        return cls(
            c1=params.load_point(obj["c1"]),
            c2=params.load_point(obj["c2"]),
            key_id=str(obj["k"]),
        )


def encrypt(
    value: int,
    public_key: PublicKey,
    params: Optional[CurveParameters] = None,
    rng: Optional[RandomnessSource] = None,
) -> Ciphertext:
    """
    Encrypt one non-negative metric value.

    Raises:
        MetricSchemaError: If value is not an integer in [0, 2^32 - 1]
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise MetricSchemaError(f"metric value must be an integer, got {type(value).__name__}")
    if not 0 <= value <= MAX_METRIC_VALUE:
        raise MetricSchemaError(f"metric value out of range [0, {MAX_METRIC_VALUE}]")

    params = params or get_cached_curve_params()
    rng = rng or RandomnessSource()
    r = 1 + rng.get_random_scalar(params.order - 1)
    return Ciphertext(
        c1=params.mul(r),
        c2=params.mul(value) + params.mul(r, public_key.point),
        key_id=public_key.key_id,
    )


def homomorphic_sum(ciphertexts: Iterable[Ciphertext]) -> Ciphertext:
    """
    Sum ciphertexts that share one key.

    Raises:
        KeyMismatchError: If any ciphertext uses another key
        ValueError: If no ciphertexts are given
    """
    iterator = iter(ciphertexts)
    try:
        total = next(iterator)
    except StopIteration:
        raise ValueError("homomorphic_sum needs at least one ciphertext") from None
    for ciphertext in iterator:
        total = total + ciphertext
    return total


# ============================================================================
# DECRYPTION (BABY-STEP GIANT-STEP)
# ============================================================================


class BabyStepTable:
    """Precomputed j*G -> j for j in [0, 2^bits)."""

    def __init__(self, params: CurveParameters, bits: int = DEFAULT_DECRYPTION_TABLE_BITS) -> None:
        if not 0 < bits <= MAX_DECRYPTION_TABLE_BITS:
            raise ValueError(f"table bits must be in [1, {MAX_DECRYPTION_TABLE_BITS}]")
        self.params = params
        self.size = 1 << bits
        self._table: Dict[bytes, int] = {}
        point = params.infinity()
        for j in range(self.size):
            self._table[point_key(point)] = j
            point = point + params.G
        self._giant_step = params.mul(params.order - self.size)

    def solve(self, point, bound: int) -> int:
        """
        Find m in [0, bound] with m*G == point.

        Raises:
            DecryptionRangeError: If no such m exists
        """
        gamma = point
        for i in range(math.ceil((bound + 1) / self.size)):
            j = self._table.get(point_key(gamma))
            if j is not None:
                m = i * self.size + j
                if m <= bound:
                    return m
                break
            gamma = gamma + self._giant_step
        raise DecryptionRangeError(f"plaintext outside searchable range [0, {bound}]")


_TABLES: Dict[int, BabyStepTable] = {}
_TABLES_LOCK = threading.Lock()


def get_baby_step_table(bits: int = DEFAULT_DECRYPTION_TABLE_BITS) -> BabyStepTable:
    table = _TABLES.get(bits)
    if table is not None:
        return table
    with _TABLES_LOCK:
        if bits not in _TABLES:
            _TABLES[bits] = BabyStepTable(get_cached_curve_params(), bits)
    return _TABLES[bits]


def decrypt(
    ciphertext: Ciphertext,
    keypair: KeyPair,
    bound: int,
    table: Optional[BabyStepTable] = None,
) -> int:
    """
    Decrypt a (summed) ciphertext whose plaintext lies in [0, bound].

    Raises:
        KeyMismatchError: If the ciphertext was made under another key
        DecryptionRangeError: If the plaintext is outside [0, bound]
    """
    if ciphertext.key_id != keypair.public.key_id:
        raise KeyMismatchError(
            f"ciphertext key {ciphertext.key_id} does not match {keypair.public.key_id}"
        )
    table = table or get_baby_step_table()
    params = table.params
    shared = params.mul(keypair.secret, ciphertext.c1)
    message_point = ciphertext.c2 + params.mul(params.order - 1, shared)
    return table.solve(message_point, bound)

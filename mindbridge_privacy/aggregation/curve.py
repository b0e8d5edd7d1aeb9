"""
secp256k1 group setup for additively homomorphic encryption (petlib).

Implementation Details:
    - Curve: secp256k1 (NID 714), prime order, cofactor 1
    - G: standard secp256k1 generator
    - Library: petlib
"""

import threading
from dataclasses import dataclass
from typing import Any, Optional

try:
    from petlib.bn import Bn
    from petlib.ec import EcGroup, EcPt
except ImportError:
    raise ImportError(
        "petlib is required for homomorphic aggregation. "
        "Install with: pip install petlib"
    )

from .config import (
    CURVE_LIBRARY,
    CURVE_NAME,
    CURVE_NID,
    GROUP_ORDER,
    POINT_SIZE_BYTES,
    SCALAR_SIZE_BYTES,
)
from .errors import AggregationError

INFINITY_KEY = b"\x00"


# ============================================================================
# CURVE SETUP
# ============================================================================


@dataclass
class CurveParameters:
    """
    Elliptic curve parameters for ElGamal aggregation.

    Attributes:
        curve: Curve name
        library: Cryptographic library
        group: Elliptic curve group (EcGroup)
        G: Standard generator
        order: Group order
    """

    curve: str
    library: str
    group: Any  # EcGroup
    G: Any  # EcPt
    order: int

    def __post_init__(self):
        if not isinstance(self.order, int):
            self.order = int(self.order)
        if self.order != GROUP_ORDER:
            raise AggregationError(
                f"Group order mismatch: expected {GROUP_ORDER}, got {self.order}"
            )

    def infinity(self):
        return self.group.infinite()

    def mul(self, scalar: int, point=None):
        """scalar * point (default generator), scalar reduced mod order."""
        return to_bn(scalar % self.order) * (self.G if point is None else point)

    def load_point(self, data: bytes):
        if data == INFINITY_KEY:
            return self.infinity()
        if len(data) != POINT_SIZE_BYTES:
            raise AggregationError(f"point must be {POINT_SIZE_BYTES} bytes")
        try:
            return EcPt.from_binary(data, self.group)
        except Exception as e:
            raise AggregationError(f"invalid curve point: {e}") from e


def to_bn(value: int) -> Bn:
    """Convert a scalar in [0, GROUP_ORDER) to a petlib Bn."""
    return Bn.from_binary(value.to_bytes(SCALAR_SIZE_BYTES, byteorder="big"))


def point_key(point) -> bytes:
    """Canonical bytes for a point; the point at infinity maps to b"\\x00"."""
    if point.is_infinite():
        return INFINITY_KEY
    return point.export()


def setup_curve(
    curve_name: Optional[str] = None, library: Optional[str] = None
) -> CurveParameters:
    """
    Set up the secp256k1 group.

    Raises:
        ValueError: If curve/library combination is unsupported
        AggregationError: If curve initialization fails
    """
    curve_name = curve_name or CURVE_NAME
    library = library or CURVE_LIBRARY

    if curve_name != "secp256k1":
        raise ValueError(f"Only secp256k1 is supported, got {curve_name}")
    if library != "petlib":
        raise ValueError(f"Only petlib is supported, got {library}")

    try:
        group = EcGroup(CURVE_NID)
        return CurveParameters(
            curve=curve_name,
            library=library,
            group=group,
            G=group.generator(),
            order=int(group.order()),
        )
    except AggregationError:
        raise
    except Exception as e:
        raise AggregationError(f"Failed to initialize curve {curve_name}: {e}") from e


# ============================================================================
# CACHING
# ============================================================================

_CURVE_PARAMS_CACHE: Optional[CurveParameters] = None
_CACHE_LOCK = threading.Lock()


def get_cached_curve_params() -> CurveParameters:
    """
    Get cached curve parameters (initialize if needed).

    Thread-safe using double-checked locking.
    """
    global _CURVE_PARAMS_CACHE

    if _CURVE_PARAMS_CACHE is not None:
        return _CURVE_PARAMS_CACHE

    with _CACHE_LOCK:
        if _CURVE_PARAMS_CACHE is None:
            _CURVE_PARAMS_CACHE = setup_curve()

    return _CURVE_PARAMS_CACHE

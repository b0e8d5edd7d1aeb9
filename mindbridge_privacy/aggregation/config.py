"""
Configuration for homomorphic aggregation and differentially-private release.

The aggregation subsystem shares no keys or curve with the proof core: it
works over secp256k1 (petlib) while proofs live on BN254.
"""

import math

# ============================================================================
# CURVE SELECTION
# ============================================================================

CURVE_NAME = "secp256k1"
CURVE_LIBRARY = "petlib"
CURVE_NID = 714  # OpenSSL NID for secp256k1
GROUP_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
SCALAR_SIZE_BYTES = 32
POINT_SIZE_BYTES = 33  # compressed

# ============================================================================
# METRIC DOMAIN
# ============================================================================

METRIC_VALUE_BITS = 32
MAX_METRIC_VALUE = (1 << METRIC_VALUE_BITS) - 1

# Baby-step table of 2^bits points; giant steps cover the rest of the
# (users * MAX_METRIC_VALUE) aggregate range.
DEFAULT_DECRYPTION_TABLE_BITS = 16
MAX_DECRYPTION_TABLE_BITS = 24

FIELD_KIND_AVERAGE = "average"
FIELD_KIND_COUNT = "count"
FIELD_KINDS = (FIELD_KIND_AVERAGE, FIELD_KIND_COUNT)

# ============================================================================
# DIFFERENTIAL PRIVACY
# ============================================================================

DEFAULT_EPSILON_CAP = 1.0  # per consumer, per epoch
CONFIDENCE_Z_95 = 1.96
LAPLACE_SENSITIVITY = 1.0


def confidence_half_width(epsilon: float) -> float:
    """95% interval half-width of Laplace(0, 1/epsilon) noise as reported."""
    return CONFIDENCE_Z_95 * math.sqrt(2.0) / epsilon


# ============================================================================
# VALIDATION
# ============================================================================


def validate_config() -> None:
    """
    Validate configuration parameters.

    Raises:
        AssertionError: If configuration is invalid
    """
    assert CURVE_NAME == "secp256k1", "Aggregation requires secp256k1"
    assert CURVE_LIBRARY == "petlib", "secp256k1 requires petlib library"
    assert CURVE_NID == 714, "secp256k1 NID must be 714"
    assert GROUP_ORDER.bit_length() == 8 * SCALAR_SIZE_BYTES, "Group order size mismatch"
    assert 0 < DEFAULT_DECRYPTION_TABLE_BITS <= MAX_DECRYPTION_TABLE_BITS, "Invalid table size"
    assert MAX_METRIC_VALUE < GROUP_ORDER, "Metric domain exceeds group order"
    assert DEFAULT_EPSILON_CAP > 0, "Epsilon cap must be positive"


validate_config()

"""
Cryptographic configuration for the zero-knowledge proof core.

All proofs live on BN254 (alt_bn128), the pairing-friendly curve used by
circom/snarkjs and by the EVM pairing precompile, so a proof produced here is
checked by exactly the same equation an external verifier runs.

Circuit signals are elements of the BN254 scalar field.
"""

# ============================================================================
# CURVE SELECTION
# ============================================================================

CURVE_NAME = "bn128"
CURVE_LIBRARY = "py_ecc"
PROTOCOL = "groth16"

# BN254 scalar field (order of G1/G2), every circuit signal lives here
SCALAR_FIELD = (
    21888242871839275222246405745257275088548364400416034343698204186575808495617
)
SCALAR_FIELD_BITS = 254

# BN254 base field (coordinates of G1 points)
BASE_FIELD = (
    21888242871839275222246405745257275088696311157297823662689037894645226208583
)

# ============================================================================
# SIGNAL WIDTHS
# ============================================================================

# Comparator width for scores; widths above this are declared per signal
COMPARATOR_BITS = 8
MAX_COMPARATOR_BITS = 252  # circomlib LessThan limit

MOOD_HISTORY_LENGTH = 30
INTERACTION_HISTORY_LENGTH = 20

# Slope is reported in hundredths of a mood point per day
TREND_SCALE = 100
SECONDS_PER_DAY = 86400

MAX_PRIVACY_SCORE = 5

# ============================================================================
# POSEIDON PARAMETERS
# ============================================================================

POSEIDON_WIDTH = 3  # rate 2, capacity 1
POSEIDON_FULL_ROUNDS = 8
POSEIDON_PARTIAL_ROUNDS = 57
POSEIDON_ALPHA = 5
POSEIDON_SEED = b"MINDBRIDGE_POSEIDON_BN254_T3_V1"

# ============================================================================
# DOMAIN SEPARATION
# ============================================================================

DOMAIN_SEPARATOR_PREFIX = b"MINDBRIDGE_ZK_V1_"

DOMAIN_SEPARATORS = {
    "fingerprint": DOMAIN_SEPARATOR_PREFIX + b"REQUEST_FINGERPRINT",
    "circuit_digest": DOMAIN_SEPARATOR_PREFIX + b"CIRCUIT_DIGEST",
    "vk_digest": DOMAIN_SEPARATOR_PREFIX + b"VK_DIGEST",
    "r1cs_digest": DOMAIN_SEPARATOR_PREFIX + b"R1CS_DIGEST",
}

# ============================================================================
# ARTIFACTS & SERIALIZATION
# ============================================================================

ARTIFACTS_ENV_VAR = "MINDBRIDGE_ARTIFACTS_DIR"
CIRCUIT_FILENAME = "circuit.cbor"
PROVING_KEY_FILENAME = "proving_key.cbor"
VERIFICATION_KEY_FILENAME = "verification_key.json"
ARTIFACT_FORMAT_VERSION = 1

# ============================================================================
# SERVICE LIMITS
# ============================================================================

DEFAULT_CACHE_TTL_SECONDS = 3600.0
MAX_PROOFS_IN_MEMORY = 10_000
MAX_PROOF_BATCH_SIZE = 100
DEFAULT_PROVER_WORKERS = 4

# ============================================================================
# VALIDATION
# ============================================================================


def validate_config() -> bool:
    """
    Validate configuration parameters.

    Returns:
        True if configuration is valid

    Raises:
        AssertionError: If configuration is invalid
    """
    assert SCALAR_FIELD.bit_length() == SCALAR_FIELD_BITS, "Scalar field size mismatch"
    assert BASE_FIELD > SCALAR_FIELD, "Base field must exceed scalar field on BN254"
    assert COMPARATOR_BITS <= MAX_COMPARATOR_BITS, "Comparator too wide"
    assert POSEIDON_WIDTH >= 2, "Poseidon needs at least one rate element"
    assert POSEIDON_ALPHA == 5, "Constrained S-box computes x^5"
    assert POSEIDON_FULL_ROUNDS % 2 == 0, "Full rounds are split before/after"
    assert DEFAULT_CACHE_TTL_SECONDS > 0, "Cache TTL must be positive"
    assert 0 < MAX_PROOF_BATCH_SIZE <= MAX_PROOFS_IN_MEMORY, "Invalid batch limit"
    return True


# Auto-validate on import
validate_config()

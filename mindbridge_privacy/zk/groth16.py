"""
Groth16 over BN254 (py_ecc).

Setup arithmetizes a circuit's R1CS as a quadratic arithmetic program,
samples the toxic waste (tau, alpha, beta, gamma, delta), publishes only
group elements and discards the scalars. The prover evaluates the witness
against the QAP, computes h = (A*B - C)/Z by FFT over a coset and combines
the proving-key query points by multi-scalar multiplication:

    A = alpha + sum(w_i * A_i(tau)) + r*delta
    B = beta + sum(w_i * B_i(tau)) + s*delta
    C = sum_private(w_i * L_i) + h(tau)*Z(tau)/delta + s*A + r*B - r*s*delta

Verification is the unmodified Groth16 pairing check used by snarkjs and the
EVM verifier contract:

    e(-A, B) * e(alpha, beta) * e(vk_x, gamma) * e(C, delta) == 1
    vk_x = IC[0] + sum(s_i * IC[i + 1])
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence, Tuple

import cbor2
import structlog
from py_ecc.optimized_bn128 import (
    FQ,
    FQ2,
    FQ12,
    G1,
    G2,
    Z1,
    Z2,
    add,
    b,
    b2,
    curve_order,
    double,
    field_modulus,
    final_exponentiate,
    is_on_curve,
    multiply,
    neg,
    normalize,
    pairing,
)

from .circuits.schema import CircuitDefinition
from .config import (
    ARTIFACT_FORMAT_VERSION,
    BASE_FIELD,
    CURVE_NAME,
    DOMAIN_SEPARATORS,
    PROTOCOL,
    SCALAR_FIELD,
    SCALAR_FIELD_BITS,
)
from .exceptions import ArtifactError, CryptographicError
from .qap import EvaluationDomain, column_evaluations, num_rows, row_evaluations
from .r1cs import ConstraintSystem
from .security import RandomnessSource, digest_hex
from .types import G1Affine, G2Affine, ProofPoints

logger = structlog.get_logger()

if curve_order != SCALAR_FIELD or field_modulus != BASE_FIELD:
    raise CryptographicError("py_ecc bn128 parameters do not match configuration")


# ============================================================================
# POINT CONVERSION
# ============================================================================


def _coeff(value: Any) -> int:
    return (value.n if hasattr(value, "n") else int(value)) % BASE_FIELD


def _is_infinity(point) -> bool:
    return point[2] == point[2].zero()


def g1_to_affine(point) -> G1Affine:
    """Affine integer coordinates; the point at infinity encodes as (0, 0)."""
    if _is_infinity(point):
        return 0, 0
    x, y = normalize(point)
    return _coeff(x), _coeff(y)


def g2_to_affine(point) -> G2Affine:
    """Affine coordinates ((x_c0, x_c1), (y_c0, y_c1)); infinity is all zeros."""
    if _is_infinity(point):
        return (0, 0), (0, 0)
    x, y = normalize(point)
    return (
        (_coeff(x.coeffs[0]), _coeff(x.coeffs[1])),
        (_coeff(y.coeffs[0]), _coeff(y.coeffs[1])),
    )


def _check_coordinate(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError("coordinate must be an integer")
    if not 0 <= value < BASE_FIELD:
        raise ValueError("coordinate outside base field")
    return value


def g1_from_affine(coords: Sequence[int]):
    """Parse and validate a G1 point (on-curve check, (0, 0) is infinity)."""
    if len(coords) != 2:
        raise ValueError("G1 point needs two coordinates")
    x, y = (_check_coordinate(c) for c in coords)
    if x == 0 and y == 0:
        return Z1
    point = (FQ(x), FQ(y), FQ.one())
    if not is_on_curve(point, b):
        raise ValueError("G1 point not on curve")
    return point


def g2_from_affine(coords: Sequence[Sequence[int]], subgroup_check: bool = True):
    """Parse and validate a G2 point (on-curve and, by default, subgroup checks)."""
    if len(coords) != 2 or any(len(c) != 2 for c in coords):
        raise ValueError("G2 point needs two FQ2 coordinates")
    (x0, x1), (y0, y1) = [[_check_coordinate(v) for v in c] for c in coords]
    if x0 == x1 == y0 == y1 == 0:
        return (FQ2.one(), FQ2.one(), FQ2.zero())
    point = (FQ2([x0, x1]), FQ2([y0, y1]), FQ2.one())
    if not is_on_curve(point, b2):
        raise ValueError("G2 point not on curve")
    if subgroup_check and not _is_infinity(multiply(point, curve_order)):
        raise ValueError("G2 point not in prime-order subgroup")
    return point


# ============================================================================
# KEYS
# ============================================================================


@dataclass(frozen=True)
class VerificationKey:
    """
    Per-circuit verification key, immutable for the process lifetime.

    ``alphabeta_12`` is e(alpha, beta), precomputed once at load.
    """

    circuit_id: str
    n_public: int
    alpha_1: Any = field(repr=False)
    beta_2: Any = field(repr=False)
    gamma_2: Any = field(repr=False)
    delta_2: Any = field(repr=False)
    ic: Tuple[Any, ...] = field(repr=False)
    alphabeta_12: Any = field(repr=False, compare=False, default=None)

    def __post_init__(self) -> None:
        if len(self.ic) != self.n_public + 1:
            raise ArtifactError(
                f"{self.circuit_id}: IC has {len(self.ic)} points, "
                f"expected {self.n_public + 1}"
            )
        if self.alphabeta_12 is None:
            object.__setattr__(
                self, "alphabeta_12", pairing(self.beta_2, self.alpha_1)
            )

    def to_json(self) -> Dict[str, Any]:
        """snarkjs-compatible JSON layout (decimal strings, projective)."""

        def g1(point):
            x, y = g1_to_affine(point)
            return [str(x), str(y), "1"]

        def g2(point):
            (x0, x1), (y0, y1) = g2_to_affine(point)
            return [[str(x0), str(x1)], [str(y0), str(y1)], ["1", "0"]]

        return {
            "protocol": PROTOCOL,
            "curve": CURVE_NAME,
            "circuitId": self.circuit_id,
            "nPublic": self.n_public,
            "vk_alpha_1": g1(self.alpha_1),
            "vk_beta_2": g2(self.beta_2),
            "vk_gamma_2": g2(self.gamma_2),
            "vk_delta_2": g2(self.delta_2),
            "IC": [g1(p) for p in self.ic],
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "VerificationKey":
        """
        Parse a verification key, validating every point.

        Raises:
            ArtifactError: If the key is malformed or for another protocol
        """
        try:
            if data["protocol"] != PROTOCOL or data["curve"] != CURVE_NAME:
                raise ArtifactError("verification key is not groth16/bn128")

            def g1(raw):
                return g1_from_affine([int(raw[0]), int(raw[1])])

            def g2(raw):
                return g2_from_affine([
                    [int(raw[0][0]), int(raw[0][1])],
                    [int(raw[1][0]), int(raw[1][1])],
                ])

            return cls(
                circuit_id=str(data["circuitId"]),
                n_public=int(data["nPublic"]),
                alpha_1=g1(data["vk_alpha_1"]),
                beta_2=g2(data["vk_beta_2"]),
                gamma_2=g2(data["vk_gamma_2"]),
                delta_2=g2(data["vk_delta_2"]),
                ic=tuple(g1(p) for p in data["IC"]),
            )
        except ArtifactError:
            raise
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise ArtifactError(f"malformed verification key: {e}") from e

    @property
    def digest(self) -> str:
        encoded = cbor2.dumps(self.to_json(), canonical=True)
        return digest_hex(encoded, DOMAIN_SEPARATORS["vk_digest"])


def _g1_list(points) -> list:
    return [list(g1_to_affine(p)) for p in points]


def _g2_list(points) -> list:
    return [[list(c) for c in g2_to_affine(p)] for p in points]


@dataclass(frozen=True)
class ProvingKey:
    """
    Per-circuit proving key: group elements only, no setup scalars.

    Query vectors are indexed by witness variable:
    ``a_query[i] = A_i(tau)*G1``, ``b1_query``/``b2_query`` likewise for B,
    ``l_query`` covers private variables with
    ``(beta*A_i + alpha*B_i + C_i)(tau)/delta * G1`` and
    ``h_query[j] = tau^j * Z(tau)/delta * G1``.
    """

    circuit_id: str
    vk_digest: str
    r1cs_digest: str
    n_public: int
    domain_size: int
    alpha_1: Any = field(repr=False)
    beta_1: Any = field(repr=False)
    beta_2: Any = field(repr=False)
    delta_1: Any = field(repr=False)
    delta_2: Any = field(repr=False)
    a_query: Tuple[Any, ...] = field(repr=False)
    b1_query: Tuple[Any, ...] = field(repr=False)
    b2_query: Tuple[Any, ...] = field(repr=False)
    l_query: Tuple[Any, ...] = field(repr=False)
    h_query: Tuple[Any, ...] = field(repr=False)

    def __post_init__(self) -> None:
        m = len(self.a_query)
        if len(self.b1_query) != m or len(self.b2_query) != m:
            raise ArtifactError(f"{self.circuit_id}: query vectors differ in length")
        if len(self.l_query) != m - self.n_public - 1:
            raise ArtifactError(f"{self.circuit_id}: L query does not match variable count")
        if self.domain_size & (self.domain_size - 1) or len(self.h_query) != self.domain_size - 1:
            raise ArtifactError(f"{self.circuit_id}: H query does not match domain size")

    @property
    def num_variables(self) -> int:
        return len(self.a_query)

    def serialize(self) -> bytes:
        return cbor2.dumps({
            "v": ARTIFACT_FORMAT_VERSION,
            "circuit_id": self.circuit_id,
            "vk_digest": self.vk_digest,
            "r1cs_digest": self.r1cs_digest,
            "n_public": self.n_public,
            "domain_size": self.domain_size,
            "alpha_1": list(g1_to_affine(self.alpha_1)),
            "beta_1": list(g1_to_affine(self.beta_1)),
            "beta_2": _g2_list([self.beta_2])[0],
            "delta_1": list(g1_to_affine(self.delta_1)),
            "delta_2": _g2_list([self.delta_2])[0],
            "a_query": _g1_list(self.a_query),
            "b1_query": _g1_list(self.b1_query),
            "b2_query": _g2_list(self.b2_query),
            "l_query": _g1_list(self.l_query),
            "h_query": _g1_list(self.h_query),
        })

    @classmethod
    def deserialize(cls, data: bytes) -> "ProvingKey":
        """
        Decode a proving key; every point is checked to lie on its curve.

        Raises:
            ArtifactError: If the key is malformed
        """
        try:
            obj = cbor2.loads(data)
        except Exception as e:
            raise ArtifactError(f"Failed to decode proving key: {e}") from e
        if not isinstance(obj, dict):
            raise ArtifactError("Invalid proving key format")
        if obj.get("v") != ARTIFACT_FORMAT_VERSION:
            raise ArtifactError(f"Unsupported proving key version: {obj.get('v')}")

        def g2(raw):
            return g2_from_affine(raw, subgroup_check=False)

        try:
            return cls(
                circuit_id=str(obj["circuit_id"]),
                vk_digest=str(obj["vk_digest"]),
                r1cs_digest=str(obj["r1cs_digest"]),
                n_public=int(obj["n_public"]),
                domain_size=int(obj["domain_size"]),
                alpha_1=g1_from_affine(obj["alpha_1"]),
                beta_1=g1_from_affine(obj["beta_1"]),
                beta_2=g2(obj["beta_2"]),
                delta_1=g1_from_affine(obj["delta_1"]),
                delta_2=g2(obj["delta_2"]),
                a_query=tuple(g1_from_affine(p) for p in obj["a_query"]),
                b1_query=tuple(g1_from_affine(p) for p in obj["b1_query"]),
                b2_query=tuple(g2(p) for p in obj["b2_query"]),
                l_query=tuple(g1_from_affine(p) for p in obj["l_query"]),
                h_query=tuple(g1_from_affine(p) for p in obj["h_query"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ArtifactError(f"Invalid proving key format: {e}") from e


# ============================================================================
# MULTI-SCALAR MULTIPLICATION
# ============================================================================


class FixedBaseTable:
    """
    Windowed multiples of one base point: ``rows[w][d] = d * 2^(c*w) * base``.

    Turns each scalar multiplication into at most one addition per window.
    """

    def __init__(self, base, window: int = 8) -> None:
        self.window = window
        self.zero = _infinity_like(base)
        self.rows = []
        row_base = base
        for _ in range(-(-SCALAR_FIELD_BITS // window)):
            row = [self.zero, row_base]
            for _ in range(2, 1 << window):
                row.append(add(row[-1], row_base))
            self.rows.append(row)
            row_base = add(row[-1], row_base)

    def __call__(self, scalar: int):
        scalar %= SCALAR_FIELD
        mask = (1 << self.window) - 1
        acc = self.zero
        for row in self.rows:
            if not scalar:
                break
            digit = scalar & mask
            if digit:
                acc = add(acc, row[digit])
            scalar >>= self.window
        return acc

    def batch(self, scalars: Sequence[int]) -> Tuple[Any, ...]:
        """Multiples for every scalar, normalized to z = 1."""
        return normalize_all([self(s) for s in scalars])


def _infinity_like(point):
    one = point[2].one()
    return (one, one, point[2].zero())


def normalize_all(points: Sequence[Any]) -> Tuple[Any, ...]:
    """Scale projective points to z = 1 with one field inversion."""
    finite = [i for i, p in enumerate(points) if not _is_infinity(p)]
    out = [_infinity_like(p) for p in points]
    if not finite:
        return tuple(out)
    one = points[finite[0]][2].one()
    prefix = []
    acc = one
    for i in finite:
        prefix.append(acc)
        acc = acc * points[i][2]
    inverse = one / acc
    for k in range(len(finite) - 1, -1, -1):
        x, y, z = points[finite[k]]
        z_inv = prefix[k] * inverse
        inverse = inverse * z
        out[finite[k]] = (x * z_inv, y * z_inv, one)
    return tuple(out)


def multi_scalar_mul(points: Sequence[Any], scalars: Sequence[int], zero):
    """
    sum(scalar_i * point_i) by Pippenger's bucket method.

    Zero scalars and points at infinity are skipped; ``zero`` is returned
    when nothing remains.
    """
    pairs = []
    for point, scalar in zip(points, scalars):
        scalar %= SCALAR_FIELD
        if scalar and not _is_infinity(point):
            pairs.append((point, scalar))
    if not pairs:
        return zero

    window = max(2, len(pairs).bit_length() - 4)
    mask = (1 << window) - 1
    top = max(s.bit_length() for _, s in pairs)
    result = zero
    for shift in range(((top - 1) // window) * window, -1, -window):
        if not _is_infinity(result):
            for _ in range(window):
                result = double(result)
        buckets: list = [None] * (mask + 1)
        for point, scalar in pairs:
            digit = (scalar >> shift) & mask
            if digit:
                bucket = buckets[digit]
                buckets[digit] = point if bucket is None else add(bucket, point)
        running = zero
        window_sum = zero
        for digit in range(mask, 0, -1):
            if buckets[digit] is not None:
                running = add(running, buckets[digit])
            window_sum = add(window_sum, running)
        result = add(result, window_sum)
    return result


# ============================================================================
# SETUP / PROVE / VERIFY
# ============================================================================


def trusted_setup(
    circuit: CircuitDefinition, rng: Optional[RandomnessSource] = None
) -> Tuple[ProvingKey, VerificationKey]:
    """
    Run the one-time per-circuit setup.

    tau, alpha, beta, gamma and delta are sampled, used to build the keys
    and discarded.

    Returns:
        (proving_key, verification_key) bound to each other by digest
    """
    rng = rng or RandomnessSource()
    cs = circuit.compile()
    domain = EvaluationDomain.for_rows(num_rows(cs))
    tau = rng.get_random_field_element()
    while domain.vanishing_at(tau) == 0:
        tau = rng.get_random_field_element()
    alpha, beta, gamma, delta = (rng.get_random_field_element() for _ in range(4))
    gamma_inv = pow(gamma, -1, SCALAR_FIELD)
    delta_inv = pow(delta, -1, SCALAR_FIELD)

    a_at, b_at, c_at = column_evaluations(cs, domain.lagrange_at(tau))
    combined = [
        (beta * a + alpha * b + c) % SCALAR_FIELD
        for a, b, c in zip(a_at, b_at, c_at)
    ]
    n_public = cs.n_public
    h_scalars = []
    power = domain.vanishing_at(tau) * delta_inv % SCALAR_FIELD
    for _ in range(domain.size - 1):
        h_scalars.append(power)
        power = power * tau % SCALAR_FIELD

    g1 = FixedBaseTable(G1)
    g2 = FixedBaseTable(G2)
    alpha_1, beta_1, delta_1 = g1.batch([alpha, beta, delta])
    beta_2, gamma_2, delta_2 = g2.batch([beta, gamma, delta])

    vk = VerificationKey(
        circuit_id=circuit.circuit_id,
        n_public=n_public,
        alpha_1=alpha_1,
        beta_2=beta_2,
        gamma_2=gamma_2,
        delta_2=delta_2,
        ic=g1.batch([v * gamma_inv for v in combined[:n_public + 1]]),
    )
    pk = ProvingKey(
        circuit_id=circuit.circuit_id,
        vk_digest=vk.digest,
        r1cs_digest=cs.digest(),
        n_public=n_public,
        domain_size=domain.size,
        alpha_1=alpha_1,
        beta_1=beta_1,
        beta_2=beta_2,
        delta_1=delta_1,
        delta_2=delta_2,
        a_query=g1.batch(a_at),
        b1_query=g1.batch(b_at),
        b2_query=g2.batch(b_at),
        l_query=g1.batch([v * delta_inv for v in combined[n_public + 1:]]),
        h_query=g1.batch(h_scalars),
    )
    logger.info(
        "groth16_setup_complete",
        circuit_id=circuit.circuit_id,
        constraints=cs.num_constraints,
        variables=cs.num_variables,
        domain_size=domain.size,
    )
    return pk, vk


def prove(
    pk: ProvingKey,
    cs: ConstraintSystem,
    rng: Optional[RandomnessSource] = None,
    check: bool = True,
) -> ProofPoints:
    """
    Produce proof points from a synthesized constraint system.

    Args:
        pk: Proving key of the circuit ``cs`` was synthesized from
        cs: Constraints plus witness values
        rng: Randomness for the zero-knowledge blinding factors r and s
        check: Refuse witnesses that leave a constraint unsatisfied

    Raises:
        ValueError: If ``cs`` does not match the key, or the witness does not
            satisfy it (with ``check``)
    """
    if (
        cs.n_public != pk.n_public
        or cs.num_variables != pk.num_variables
        or num_rows(cs) > pk.domain_size
    ):
        raise ValueError("constraint system does not match the proving key")

    domain = EvaluationDomain(pk.domain_size)
    a, b, c = row_evaluations(cs, domain.size)
    if check and any(x * y % SCALAR_FIELD != z for x, y, z in zip(a, b, c)):
        raise ValueError("witness does not satisfy the constraint system")
    h = domain.quotient(a, b, c)

    rng = rng or RandomnessSource()
    r = rng.get_random_field_element()
    s = rng.get_random_field_element()
    w = cs.values

    a_point = add(add(pk.alpha_1, multi_scalar_mul(pk.a_query, w, Z1)), multiply(pk.delta_1, r))
    b_point = add(add(pk.beta_2, multi_scalar_mul(pk.b2_query, w, Z2)), multiply(pk.delta_2, s))
    b1_point = add(add(pk.beta_1, multi_scalar_mul(pk.b1_query, w, Z1)), multiply(pk.delta_1, s))

    c_point = multi_scalar_mul(pk.l_query, w[pk.n_public + 1:], Z1)
    c_point = add(c_point, multi_scalar_mul(pk.h_query, h[:domain.size - 1], Z1))
    c_point = add(c_point, multiply(a_point, s))
    c_point = add(c_point, multiply(b1_point, r))
    c_point = add(c_point, neg(multiply(pk.delta_1, r * s % SCALAR_FIELD)))

    return ProofPoints(
        a=g1_to_affine(a_point),
        b=g2_to_affine(b_point),
        c=g1_to_affine(c_point),
    )


def verify(vk: VerificationKey, proof: ProofPoints, public_signals: Sequence[int]) -> bool:
    """
    Groth16 verification; returns False for anything that does not verify.

    Mirrors the external verifier: signal count must match, every signal
    must be a canonical field element, every point must be valid.
    """
    if len(public_signals) != vk.n_public:
        return False
    for signal in public_signals:
        if isinstance(signal, bool) or not isinstance(signal, int):
            return False
        if not 0 <= signal < SCALAR_FIELD:
            return False
    try:
        a = g1_from_affine(proof.a)
        b_point = g2_from_affine(proof.b)
        c = g1_from_affine(proof.c)
    except (TypeError, ValueError):
        return False

    vk_x = vk.ic[0]
    for signal, point in zip(public_signals, vk.ic[1:]):
        vk_x = add(vk_x, multiply(point, signal))

    miller = (
        pairing(b_point, neg(a), final_exponentiate=False)
        * pairing(vk.gamma_2, vk_x, final_exponentiate=False)
        * pairing(vk.delta_2, c, final_exponentiate=False)
    )
    return final_exponentiate(miller) * vk.alphabeta_12 == FQ12.one()

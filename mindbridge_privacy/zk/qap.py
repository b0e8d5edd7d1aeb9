"""
Quadratic arithmetic program over a radix-2 evaluation domain.

Row j of a constraint system is placed at omega^j, where omega generates the
multiplicative subgroup of order N (a power of two) of the scalar field.
Rows past the constraints hold one ``w_i * 0 = 0`` row per public variable
(including the constant), which keeps the public columns linearly
independent. The remaining rows up to N are zero.
"""

from __future__ import annotations

from typing import List, Sequence, Tuple

from .config import SCALAR_FIELD
from .r1cs import ConstraintSystem

_P = SCALAR_FIELD


def _multiplicative_generator() -> int:
    candidate = 2
    while pow(candidate, (_P - 1) // 2, _P) != _P - 1:
        candidate += 1
    return candidate


# Smallest quadratic non-residue: its powers reach every 2-power root of unity
GENERATOR = _multiplicative_generator()
TWO_ADICITY = ((_P - 1) & -(_P - 1)).bit_length() - 1


def _fft(values: Sequence[int], root: int) -> List[int]:
    """Evaluate the polynomial with coefficients ``values`` at root^k."""
    n = len(values)
    out = [v % _P for v in values]

    j = 0
    for i in range(1, n):
        bit = n >> 1
        while j & bit:
            j ^= bit
            bit >>= 1
        j |= bit
        if i < j:
            out[i], out[j] = out[j], out[i]

    length = 2
    while length <= n:
        step = pow(root, n // length, _P)
        half = length >> 1
        twiddles = [1] * half
        for k in range(1, half):
            twiddles[k] = twiddles[k - 1] * step % _P
        for start in range(0, n, length):
            for k in range(half):
                u = out[start + k]
                v = out[start + k + half] * twiddles[k] % _P
                out[start + k] = (u + v) % _P
                out[start + k + half] = (u - v) % _P
        length <<= 1
    return out


def _scale(values: Sequence[int], factor: int) -> List[int]:
    out = []
    power = 1
    for value in values:
        out.append(value * power % _P)
        power = power * factor % _P
    return out


class EvaluationDomain:
    """
    Multiplicative subgroup of order ``size`` and its coset ``GENERATOR * H``.

    Raises:
        ValueError: If size is not a power of two the field supports
    """

    def __init__(self, size: int) -> None:
        if size < 2 or size & (size - 1):
            raise ValueError(f"domain size must be a power of two, got {size}")
        if size.bit_length() - 1 > TWO_ADICITY:
            raise ValueError(f"domain size {size} exceeds the field's 2-adicity")
        self.size = size
        self.omega = pow(GENERATOR, (_P - 1) // size, _P)
        self.omega_inv = pow(self.omega, -1, _P)
        self.size_inv = pow(size, -1, _P)

    @classmethod
    def for_rows(cls, rows: int) -> "EvaluationDomain":
        size = 2
        while size < rows:
            size <<= 1
        return cls(size)

    def __repr__(self) -> str:
        return f"EvaluationDomain(size={self.size})"

    def _padded(self, values: Sequence[int]) -> List[int]:
        if len(values) > self.size:
            raise ValueError(f"{len(values)} values exceed domain size {self.size}")
        return list(values) + [0] * (self.size - len(values))

    def fft(self, coeffs: Sequence[int]) -> List[int]:
        return _fft(self._padded(coeffs), self.omega)

    def ifft(self, evals: Sequence[int]) -> List[int]:
        return [v * self.size_inv % _P for v in _fft(self._padded(evals), self.omega_inv)]

    def coset_fft(self, coeffs: Sequence[int]) -> List[int]:
        return self.fft(_scale(coeffs, GENERATOR))

    def coset_ifft(self, evals: Sequence[int]) -> List[int]:
        return _scale(self.ifft(evals), pow(GENERATOR, -1, _P))

    def vanishing_at(self, x: int) -> int:
        """Z(x) = x^N - 1."""
        return (pow(x, self.size, _P) - 1) % _P

    def lagrange_at(self, tau: int) -> List[int]:
        """
        L_j(tau) for every domain point omega^j.

        L_j(x) = Z(x) * omega^j / (N * (x - omega^j)); tau must lie outside
        the domain.
        """
        z = self.vanishing_at(tau)
        if z == 0:
            raise ValueError("evaluation point lies in the domain")
        factor = z * self.size_inv % _P
        out = []
        point = 1
        for _ in range(self.size):
            out.append(factor * point % _P * pow(tau - point, -1, _P) % _P)
            point = point * self.omega % _P
        return out

    def quotient(self, a: Sequence[int], b: Sequence[int], c: Sequence[int]) -> List[int]:
        """
        Coefficients of h = (A * B - C) / Z from row evaluations.

        The division is exact only when every row satisfies a * b == c;
        otherwise the result is meaningless and any proof built from it
        fails verification.
        """
        ea, eb, ec = (self.coset_fft(self.ifft(v)) for v in (a, b, c))
        z_inv = pow(self.vanishing_at(GENERATOR), -1, _P)
        h = [(x * y - z) * z_inv % _P for x, y, z in zip(ea, eb, ec)]
        return self.coset_ifft(h)


def num_rows(cs: ConstraintSystem) -> int:
    return cs.num_constraints + cs.n_public + 1


def row_evaluations(
    cs: ConstraintSystem, size: int
) -> Tuple[List[int], List[int], List[int]]:
    """<A_j, w>, <B_j, w>, <C_j, w> for every domain row j."""
    a, b, c = [0] * size, [0] * size, [0] * size
    for row, (la, lb, lc) in enumerate(cs.constraints):
        a[row] = cs.evaluate(la)
        b[row] = cs.evaluate(lb)
        c[row] = cs.evaluate(lc)
    offset = cs.num_constraints
    for i in range(cs.n_public + 1):
        a[offset + i] = cs.values[i]
    return a, b, c


def column_evaluations(
    cs: ConstraintSystem, lagrange: Sequence[int]
) -> Tuple[List[int], List[int], List[int]]:
    """A_i(tau), B_i(tau), C_i(tau) for every variable i, given L_j(tau)."""
    m = cs.num_variables
    a, b, c = [0] * m, [0] * m, [0] * m
    for row, (la, lb, lc) in enumerate(cs.constraints):
        weight = lagrange[row]
        for column, lc_terms in ((a, la.terms), (b, lb.terms), (c, lc.terms)):
            for index, coeff in lc_terms.items():
                column[index] = (column[index] + coeff * weight) % _P
    offset = cs.num_constraints
    for i in range(cs.n_public + 1):
        a[i] = (a[i] + lagrange[offset + i]) % _P
    return a, b, c

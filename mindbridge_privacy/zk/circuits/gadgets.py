"""
Arithmetic gadgets with circomlib semantics.

Each gadget computes over canonical field elements and fails loudly (with
ConstraintViolation) where the equivalent circuit would be unsatisfiable,
instead of wrapping silently.
"""

from __future__ import annotations

from typing import Iterable, List, Sequence

from ..config import MAX_COMPARATOR_BITS, SCALAR_FIELD
from ..exceptions import ConstraintViolation


def num2bits(value: int, n: int, label: str = "num2bits") -> List[int]:
    """Little-endian bit decomposition; the value must fit in ``n`` bits."""
    if value < 0 or value >= (1 << n):
        raise ConstraintViolation(label, f"value does not fit in {n} bits")
    return [(value >> i) & 1 for i in range(n)]


def less_than(a: int, b: int, n: int, label: str = "less_than") -> int:
    """
    1 if a < b else 0, for a, b already range-checked to ``n`` bits.

    circomlib LessThan: out = 1 - bit_n(a + 2^n - b).
    """
    if n > MAX_COMPARATOR_BITS:
        raise ConstraintViolation(label, f"comparator width {n} too large")
    num2bits(a, n, f"{label}.a")
    num2bits(b, n, f"{label}.b")
    bits = num2bits(a + (1 << n) - b, n + 1, label)
    return 1 - bits[n]


def greater_eq(a: int, b: int, n: int, label: str = "greater_eq") -> int:
    """1 if a >= b else 0 (range-checked to ``n`` bits)."""
    return 1 - less_than(a, b, n, label)


def and_all(bits: Iterable[int]) -> int:
    """Multiplicative AND over boolean signals."""
    out = 1
    for bit in bits:
        if bit not in (0, 1):
            raise ConstraintViolation("and_all", "operand is not boolean")
        out *= bit
    return out


def field_sum(values: Sequence[int]) -> int:
    return sum(values) % SCALAR_FIELD


def field_mul(a: int, b: int) -> int:
    return (a * b) % SCALAR_FIELD

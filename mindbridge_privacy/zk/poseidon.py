"""
Poseidon sponge hash over the BN254 scalar field.

HADES permutation (width 3, x^5 S-box, 8 full + 57 partial rounds) with a
Cauchy MDS matrix. Round constants are expanded from a public seed so anyone
can rederive them. The capacity element starts at the input length, which
separates inputs of different arity.

Every step is a field addition, multiplication or fifth power, so
``poseidon_gadget`` expresses the same function as R1CS constraints: three
per S-box, with the linear layers folded into linear combinations.
"""

from __future__ import annotations

from typing import List, Sequence, Tuple

from .config import (
    POSEIDON_ALPHA,
    POSEIDON_FULL_ROUNDS,
    POSEIDON_PARTIAL_ROUNDS,
    POSEIDON_SEED,
    POSEIDON_WIDTH,
    SCALAR_FIELD,
)
from .r1cs import ConstraintSystem, LinearCombination, Operand, as_lc
from .security import hash_to_field

_P = SCALAR_FIELD
_T = POSEIDON_WIDTH
_RATE = _T - 1
_TOTAL_ROUNDS = POSEIDON_FULL_ROUNDS + POSEIDON_PARTIAL_ROUNDS
_HALF_FULL = POSEIDON_FULL_ROUNDS // 2


def _round_constants() -> Tuple[Tuple[int, ...], ...]:
    domain = b"POSEIDON_ROUND_CONSTANTS"
    counter = 0
    rounds = []
    for _ in range(_TOTAL_ROUNDS):
        row = []
        for _ in range(_T):
            row.append(hash_to_field(POSEIDON_SEED, domain, counter))
            counter += 1
        rounds.append(tuple(row))
    return tuple(rounds)


def _cauchy_mds() -> Tuple[Tuple[int, ...], ...]:
    xs = range(_T)
    ys = range(_T, 2 * _T)
    return tuple(
        tuple(pow(x + y, -1, _P) for y in ys)
        for x in xs
    )


ROUND_CONSTANTS = _round_constants()
MDS_MATRIX = _cauchy_mds()


def _is_full_round(r: int) -> bool:
    return r < _HALF_FULL or r >= _HALF_FULL + POSEIDON_PARTIAL_ROUNDS


def _mix(state: List[int]) -> List[int]:
    return [
        sum(m * s for m, s in zip(row, state)) % _P
        for row in MDS_MATRIX
    ]


def permute(state: Sequence[int]) -> List[int]:
    """Apply the Poseidon permutation to a width-3 state."""
    if len(state) != _T:
        raise ValueError(f"state must have {_T} elements, got {len(state)}")

    current = [s % _P for s in state]
    for r in range(_TOTAL_ROUNDS):
        constants = ROUND_CONSTANTS[r]
        current = [(s + c) % _P for s, c in zip(current, constants)]
        if _is_full_round(r):
            current = [pow(s, POSEIDON_ALPHA, _P) for s in current]
        else:
            current[0] = pow(current[0], POSEIDON_ALPHA, _P)
        current = _mix(current)
    return current


def poseidon_hash(inputs: Sequence[int]) -> int:
    """
    Hash a sequence of field elements to one field element.

    Args:
        inputs: Field elements, each in [0, SCALAR_FIELD)

    Raises:
        ValueError: If inputs are empty or not canonical field elements

    Example:
        >>> h = poseidon_hash([1, 2, 3])
        >>> assert 0 <= h < SCALAR_FIELD
    """
    if not inputs:
        raise ValueError("poseidon_hash requires at least one input")
    for value in inputs:
        if not isinstance(value, int) or isinstance(value, bool):
            raise ValueError("poseidon inputs must be integers")
        if not 0 <= value < _P:
            raise ValueError("poseidon input is not a canonical field element")

    state = [len(inputs)] + [0] * _RATE
    for offset in range(0, len(inputs), _RATE):
        chunk = inputs[offset:offset + _RATE]
        for i, value in enumerate(chunk):
            state[1 + i] = (state[1 + i] + value) % _P
        state = permute(state)
    return state[1]


def _sbox_gadget(cs: ConstraintSystem, x: LinearCombination) -> LinearCombination:
    x2 = cs.mul(x, x)
    x4 = cs.mul(x2, x2)
    return cs.mul(x4, x)


def permute_gadget(
    cs: ConstraintSystem, state: Sequence[Operand]
) -> List[LinearCombination]:
    """Constrained ``permute``."""
    if len(state) != _T:
        raise ValueError(f"state must have {_T} elements, got {len(state)}")

    current = [as_lc(s) for s in state]
    for r in range(_TOTAL_ROUNDS):
        current = [s + c for s, c in zip(current, ROUND_CONSTANTS[r])]
        if _is_full_round(r):
            current = [_sbox_gadget(cs, s) for s in current]
        else:
            current[0] = _sbox_gadget(cs, current[0])
        current = [
            sum((m * s for m, s in zip(row, current)), LinearCombination())
            for row in MDS_MATRIX
        ]
    return current


def poseidon_gadget(cs: ConstraintSystem, inputs: Sequence[Operand]) -> LinearCombination:
    """Constrained ``poseidon_hash``; inputs are assumed canonical."""
    if not inputs:
        raise ValueError("poseidon_gadget requires at least one input")

    state = [as_lc(len(inputs))] + [LinearCombination() for _ in range(_RATE)]
    for offset in range(0, len(inputs), _RATE):
        chunk = inputs[offset:offset + _RATE]
        for i, value in enumerate(chunk):
            state[1 + i] = state[1 + i] + value
        state = permute_gadget(cs, state)
    return state[1]

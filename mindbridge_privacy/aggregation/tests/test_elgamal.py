"""Tests for exponential ElGamal and baby-step giant-step decryption."""

import pytest

from mindbridge_privacy.aggregation.config import MAX_METRIC_VALUE, POINT_SIZE_BYTES
from mindbridge_privacy.aggregation.curve import (
    INFINITY_KEY,
    get_cached_curve_params,
    point_key,
    setup_curve,
)
from mindbridge_privacy.aggregation.elgamal import (
    BabyStepTable,
    Ciphertext,
    KeyPair,
    decrypt,
    encrypt,
    homomorphic_sum,
)
from mindbridge_privacy.aggregation.errors import (
    AggregationError,
    DecryptionRangeError,
    KeyMismatchError,
    MetricSchemaError,
)


@pytest.fixture(scope="module")
def params():
    return get_cached_curve_params()


@pytest.fixture(scope="module")
def keypair(params):
    return KeyPair.generate(params)


@pytest.fixture(scope="module")
def small_table(params):
    return BabyStepTable(params, bits=6)


def test_curve_is_cached_singleton(params) -> None:
    assert get_cached_curve_params() is params
    assert params.curve == "secp256k1"


def test_unsupported_curve_rejected() -> None:
    with pytest.raises(ValueError):
        setup_curve("P-256")
    with pytest.raises(ValueError):
        setup_curve(library="openssl")


def test_point_encoding(params) -> None:
    assert point_key(params.infinity()) == INFINITY_KEY
    assert len(point_key(params.G)) == POINT_SIZE_BYTES
    assert params.load_point(point_key(params.G)) == params.G
    with pytest.raises(AggregationError):
        params.load_point(b"\x02" + b"\x00" * 10)


@pytest.mark.parametrize("value", [0, 1, 63, 64, 1000])
def test_decrypt_recovers_plaintext(keypair, small_table, value) -> None:
    ciphertext = encrypt(value, keypair.public)
    assert decrypt(ciphertext, keypair, bound=1024, table=small_table) == value


def test_encryption_is_randomized(keypair) -> None:
    first = encrypt(5, keypair.public)
    second = encrypt(5, keypair.public)
    assert point_key(first.c1) != point_key(second.c1)


def test_homomorphic_sum(keypair, small_table) -> None:
    values = [60, 80, 100, 7]
    total = homomorphic_sum(encrypt(v, keypair.public) for v in values)
    assert decrypt(total, keypair, bound=4 * 255, table=small_table) == sum(values)


def test_sum_of_empty_input_rejected() -> None:
    with pytest.raises(ValueError):
        homomorphic_sum([])


def test_mixing_keys_rejected(params, keypair, small_table) -> None:
    other = KeyPair.generate(params)
    assert other.public.key_id != keypair.public.key_id
    a = encrypt(1, keypair.public)
    b = encrypt(2, other.public)
    with pytest.raises(KeyMismatchError):
        a + b
    with pytest.raises(KeyMismatchError):
        decrypt(b, keypair, bound=10, table=small_table)


def test_plaintext_above_bound(keypair, small_table) -> None:
    ciphertext = encrypt(300, keypair.public)
    with pytest.raises(DecryptionRangeError):
        decrypt(ciphertext, keypair, bound=100, table=small_table)


@pytest.mark.parametrize("value", [-1, MAX_METRIC_VALUE + 1, 1.5, True, "3", None])
def test_encrypt_rejects_out_of_domain(keypair, value) -> None:
    with pytest.raises(MetricSchemaError):
        encrypt(value, keypair.public)


def test_ciphertext_serialization(params, keypair, small_table) -> None:
    ciphertext = encrypt(42, keypair.public)
    restored = Ciphertext.deserialize(ciphertext.serialize(), params)
    assert restored.key_id == ciphertext.key_id
    assert decrypt(restored, keypair, bound=100, table=small_table) == 42

    with pytest.raises(AggregationError):
        Ciphertext.deserialize(b"\xff\xff", params)


def test_keypair_repr_hides_secret(keypair) -> None:
    assert str(keypair.secret) not in repr(keypair)


def test_table_bits_validated(params) -> None:
    with pytest.raises(ValueError):
        BabyStepTable(params, bits=0)
    with pytest.raises(ValueError):
        BabyStepTable(params, bits=25)

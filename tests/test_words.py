import pytest
from hypothesis import given
from hypothesis import strategies as st

from ivmlite import words

uint256 = st.integers(min_value=0, max_value=2**256 - 1)
signed_small = st.integers(min_value=-(2**200), max_value=2**200)


@given(uint256)
def test_signed_round_trip(value):
    assert words.from_signed(words.to_signed(value)) == value


@given(signed_small)
def test_from_signed_round_trip(value):
    assert words.to_signed(words.from_signed(value)) == value


@given(signed_small, signed_small.filter(lambda v: v != 0))
def test_sdiv_smod_identity(a, b):
    q = words.to_signed(words.sdiv(words.from_signed(a), words.from_signed(b)))
    r = words.to_signed(words.smod(words.from_signed(a), words.from_signed(b)))
    assert q * b + r == a
    assert abs(r) < abs(b)
    assert r == 0 or (r < 0) == (a < 0)


def test_sdiv_truncates_towards_zero():
    assert words.sdiv(words.from_signed(-7), 2) == words.from_signed(-3)


def test_sdiv_smod_by_zero():
    assert words.sdiv(5, 0) == 0
    assert words.smod(5, 0) == 0


def test_sdiv_overflow_wraps():
    minimum = words.from_signed(-(2**255))
    assert words.sdiv(minimum, words.from_signed(-1)) == minimum


@given(signed_small, signed_small)
def test_slt_matches_signed_order(a, b):
    assert words.slt(words.from_signed(a), words.from_signed(b)) == (a < b)


@given(st.integers(min_value=31, max_value=1000), uint256)
def test_signextend_large_ext_is_identity(ext, x):
    assert words.signextend(ext, x) == x


def test_signextend_one_byte():
    assert words.signextend(0, 0x7F) == 0x7F
    assert words.signextend(0, 0x80) == words.from_signed(-128)


@given(st.integers(min_value=-(2**15), max_value=2**15 - 1), uint256)
def test_signextend_two_bytes_recovers_value(value, noise):
    x = (noise & ~0xFFFF) | (value & 0xFFFF)
    assert words.to_signed(words.signextend(1, x)) == value


def test_byte_at_indexes_from_most_significant():
    x = words.word_from_bytes(bytes(range(32)))
    for n in range(32):
        assert words.byte_at(n, x) == n


@given(st.integers(min_value=32, max_value=2**256 - 1), uint256)
def test_byte_at_out_of_range_is_zero(n, x):
    assert words.byte_at(n, x) == 0


@given(st.integers(min_value=0, max_value=2**255 - 1), st.integers(min_value=0, max_value=300))
def test_sar_of_non_negative_is_logical_shift(x, shift):
    assert words.sar(shift, x) == x >> shift


@given(st.integers(min_value=0, max_value=1000))
def test_sar_all_ones_stays_all_ones(shift):
    assert words.sar(shift, words.MASK) == words.MASK


@given(st.integers(min_value=256, max_value=2**256 - 1))
def test_sar_negative_large_shift(shift):
    assert words.sar(shift, words.from_signed(-5)) == words.MASK


@given(uint256)
def test_sar_zero_shift_is_identity(x):
    assert words.sar(0, x) == x


@given(uint256)
def test_count_significant_bytes(x):
    stripped = words.word_to_bytes(x).lstrip(b"\x00")
    assert words.count_significant_bytes(x) == len(stripped)


def test_count_significant_bytes_zero():
    assert words.count_significant_bytes(0) == 0


def test_word_from_bytes_big_endian():
    assert words.word_from_bytes(b"\x01\x02") == 0x0102


def test_word_from_bytes_too_long():
    with pytest.raises(ValueError):
        words.word_from_bytes(bytes(33))


@given(uint256)
def test_word_bytes_round_trip(x):
    data = words.word_to_bytes(x)
    assert len(data) == 32
    assert words.word_from_bytes(data) == x


@given(uint256)
def test_address_from_word_keeps_low_bytes(x):
    address = words.address_from_word(x)
    assert len(address) == 20
    assert address == words.word_to_bytes(x)[12:]
"""Helpers for 256-bit EVM words held as Python integers."""

from __future__ import annotations

WORD_BITS = 256
WORD_SIZE = 32
ADDRESS_SIZE = 20
MASK = (1 << WORD_BITS) - 1
_SIGN_BIT = 1 << (WORD_BITS - 1)


def to_signed(value: int) -> int:
    """Interpret a 256-bit word as a two's complement signed integer."""
    value &= MASK
    return value - (1 << WORD_BITS) if value & _SIGN_BIT else value


def from_signed(value: int) -> int:
    """Encode a signed integer as a 256-bit two's complement word."""
    return value & MASK


def sdiv(a: int, b: int) -> int:
    """Signed division truncating towards zero; division by zero gives 0."""
    sa, sb = to_signed(a), to_signed(b)
    if sb == 0:
        return 0
    quotient = abs(sa) // abs(sb)
    if (sa < 0) != (sb < 0):
        quotient = -quotient
    return from_signed(quotient)


def smod(a: int, b: int) -> int:
    """Signed remainder with the sign of the dividend; modulo zero gives 0."""
    sa, sb = to_signed(a), to_signed(b)
    if sb == 0:
        return 0
    remainder = abs(sa) % abs(sb)
    return from_signed(-remainder if sa < 0 else remainder)


def slt(a: int, b: int) -> bool:
    """Signed less-than comparison of two words."""
    return to_signed(a) < to_signed(b)


def signextend(ext: int, x: int) -> int:
    """Extend the sign of the (ext + 1)-byte value held in x."""
    x &= MASK
    if ext >= 31:
        return x
    sign_bit = ext * 8 + 7
    sign_mask = 1 << sign_bit
    value_mask = sign_mask - 1
    if x & sign_mask:
        return (x | ~value_mask) & MASK
    return x & value_mask


def byte_at(n: int, x: int) -> int:
    """Return the n-th byte of x counting from the most significant one."""
    if n >= WORD_SIZE:
        return 0
    return ((x & MASK) >> (8 * (WORD_SIZE - 1 - n))) & 0xFF


def sar(shift: int, x: int) -> int:
    """Arithmetic right shift of x by shift bits."""
    x &= MASK
    negative = bool(x & _SIGN_BIT)
    if shift >= WORD_BITS:
        return MASK if negative else 0
    return from_signed(to_signed(x) >> shift)


def count_significant_bytes(x: int) -> int:
    """Number of bytes needed to hold x without leading zero bytes."""
    return ((x & MASK).bit_length() + 7) // 8


def word_from_bytes(data: bytes) -> int:
    """Load a big-endian word from at most 32 bytes."""
    if len(data) > WORD_SIZE:
        raise ValueError(f"expected at most {WORD_SIZE} bytes, got {len(data)}")
    return int.from_bytes(data, "big")


def word_to_bytes(word: int) -> bytes:
    """Store a word as 32 big-endian bytes."""
    return (word & MASK).to_bytes(WORD_SIZE, "big")


def address_from_word(word: int) -> bytes:
    """Truncate a word to its low 20 bytes, giving an address."""
    return word_to_bytes(word)[WORD_SIZE - ADDRESS_SIZE:]
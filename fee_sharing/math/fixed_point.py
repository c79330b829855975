# -*- coding: utf-8 -*-
"""
fee_sharing.math.fixed_point
============================

The two primitives behind the fee_per_share accumulator.

    scaled_div(x, y, scale)        = floor((x << scale) / y)     u64 in, u128 out
    scaled_mul_shift(x, y, scale)  = floor((x * y) >> scale)     u128 in, u128 out

Width model
-----------
`scaled_div` shifts a u64 numerator into a u128 intermediate before dividing, so
the shift cannot silently lose high bits. `scaled_mul_shift` holds the full
u128 x u128 product in a u256 intermediate, shifts, then narrows back to u128.
Python ints are unbounded; the widths are enforced by explicit range checks.
"""

from __future__ import annotations

from typing import Final

from ..constants import U128_MAX, U256_MAX
from ..errors import MathOverflow

_IN_BITS: Final[int] = 64
_MID_BITS: Final[int] = 128
_WIDE_BITS: Final[int] = 256


def _check_operand(x: int, bits: int, op: str) -> None:
    if x < 0 or x >= (1 << bits):
        raise MathOverflow(f"operand outside u{bits}", op=op)


def _check_scale(scale: int, op: str) -> None:
    if scale < 0 or scale > 255:
        raise MathOverflow("scale must fit a u8", op=op)


def scaled_div(x: int, y: int, scale: int) -> int:
    """
    floor((x << scale) / y) with a u128 intermediate.

    Raises MathOverflow when y == 0, when an operand is not a u64, or when
    the shifted numerator exceeds the u128 intermediate.
    """
    _check_scale(scale, "scaled_div")
    _check_operand(x, _IN_BITS, "scaled_div")
    _check_operand(y, _IN_BITS, "scaled_div")
    if y == 0:
        raise MathOverflow("division by zero", op="scaled_div")
    prod = x << scale
    if prod > U128_MAX:
        raise MathOverflow("shift exceeds u128 intermediate", op="scaled_div")
    return prod // y


def scaled_mul_shift(x: int, y: int, scale: int) -> int:
    """
    floor((x * y) >> scale) with a u256 intermediate, narrowed to u128.

    Raises MathOverflow when an operand is not a u128 or the shifted result
    does not fit in u128.
    """
    _check_scale(scale, "scaled_mul_shift")
    _check_operand(x, _MID_BITS, "scaled_mul_shift")
    _check_operand(y, _MID_BITS, "scaled_mul_shift")
    prod = x * y
    # Unreachable for u128 operands; kept so the intermediate width is explicit.
    if prod > U256_MAX:
        raise MathOverflow("product exceeds u256 intermediate", op="scaled_mul_shift")
    quotient = prod >> scale
    if quotient > U128_MAX:
        raise MathOverflow("result does not fit u128", op="scaled_mul_shift")
    return quotient


__all__ = ["scaled_div", "scaled_mul_shift"]

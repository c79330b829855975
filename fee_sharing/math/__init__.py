# -*- coding: utf-8 -*-
"""
fee_sharing.math
================

Checked unsigned-integer helpers at explicit bit widths.

Python ints never wrap, so "overflow" here means "the result would not fit the
field it is stored in". Every helper takes the width in bits and raises
`MathOverflow` instead of clamping. The accumulator primitives live in
`fee_sharing.math.fixed_point` and are re-exported here.

Conventions
-----------
- All operations are integer-only.
- Operands are validated to lie in [0, 2**bits - 1] before use.
- `op` in the raised error names the failing helper for logs.
"""

from __future__ import annotations

from ..errors import MathOverflow


def max_for(bits: int) -> int:
    """Largest unsigned value representable in `bits` bits."""
    return (1 << bits) - 1


def require_uint(x: int, bits: int, *, op: str = "require_uint") -> int:
    if not isinstance(x, int) or isinstance(x, bool):
        raise TypeError(f"expected int, got {type(x).__name__}")
    if x < 0 or x > max_for(bits):
        raise MathOverflow(f"value outside u{bits}", op=op)
    return x


def checked_add(x: int, y: int, bits: int) -> int:
    """x + y, failing when the sum does not fit `bits`."""
    require_uint(x, bits, op="checked_add")
    require_uint(y, bits, op="checked_add")
    s = x + y
    if s > max_for(bits):
        raise MathOverflow(f"u{bits} addition overflow", op="checked_add")
    return s


def checked_sub(x: int, y: int, bits: int) -> int:
    """x - y, failing on underflow (y > x)."""
    require_uint(x, bits, op="checked_sub")
    require_uint(y, bits, op="checked_sub")
    if y > x:
        raise MathOverflow(f"u{bits} subtraction underflow", op="checked_sub")
    return x - y


def narrow(x: int, bits: int) -> int:
    """Return x unchanged if it fits `bits`, else fail. Mirrors a checked try_into."""
    if x < 0 or x > max_for(bits):
        raise MathOverflow(f"narrowing to u{bits} loses information", op="narrow")
    return x


from .fixed_point import scaled_div, scaled_mul_shift  # noqa: E402

__all__ = [
    "max_for",
    "require_uint",
    "checked_add",
    "checked_sub",
    "narrow",
    "scaled_div",
    "scaled_mul_shift",
]

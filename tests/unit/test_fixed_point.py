"""
Unit tests for dex/fixed_point.py
"""

import unittest
from decimal import Decimal, getcontext, localcontext

from dex.fixed_point import (
    DECIMAL_PRECISION,
    U64_MAX,
    U128_MAX,
    check_bound,
    checked_add,
    checked_mul,
    decimal_context,
    from_raw_amount,
    q64_to_decimal,
    to_raw_amount,
)
from pool_arbitrage.exceptions import ArithmeticOverflow


class TestCheckedArithmetic(unittest.TestCase):
    def test_checked_mul_within_bound(self):
        self.assertEqual(checked_mul(2, 3), 6)
        # u64 * u64 always fits in u128
        self.assertEqual(checked_mul(U64_MAX, U64_MAX), U64_MAX * U64_MAX)

    def test_checked_mul_overflow(self):
        with self.assertRaises(ArithmeticOverflow) as ctx:
            checked_mul(U64_MAX, 2, bound=U64_MAX)
        self.assertEqual(ctx.exception.operation, "mul")
        self.assertEqual(ctx.exception.details["bound"], U64_MAX)

    def test_checked_add_overflow(self):
        self.assertEqual(checked_add(U128_MAX - 1, 1), U128_MAX)
        with self.assertRaises(ArithmeticOverflow):
            checked_add(U128_MAX, 1)

    def test_negative_values_rejected(self):
        with self.assertRaises(ArithmeticOverflow):
            check_bound(-1)


class TestRawAmounts(unittest.TestCase):
    def test_to_raw_amount(self):
        self.assertEqual(to_raw_amount(Decimal("1.5"), 6), 1_500_000)
        self.assertEqual(to_raw_amount(Decimal("2"), 0), 2)

    def test_to_raw_amount_truncates(self):
        self.assertEqual(to_raw_amount(Decimal("0.0000019"), 6), 1)

    def test_to_raw_amount_negative(self):
        with self.assertRaises(ArithmeticOverflow):
            to_raw_amount(Decimal("-1"), 6)

    def test_to_raw_amount_exceeds_u64(self):
        with self.assertRaises(ArithmeticOverflow) as ctx:
            to_raw_amount(Decimal(2**64), 0)
        self.assertEqual(ctx.exception.operation, "to_raw_amount")

    def test_from_raw_amount(self):
        self.assertEqual(from_raw_amount(1_500_000, 6), Decimal("1.5"))
        self.assertEqual(from_raw_amount(7, 0), Decimal("7"))


class TestQ64(unittest.TestCase):
    def test_q64_to_decimal(self):
        self.assertEqual(q64_to_decimal(1 << 64), Decimal("1"))
        self.assertEqual(q64_to_decimal(1 << 63), Decimal("0.5"))

    def test_q64_rejects_values_past_u128(self):
        with self.assertRaises(ArithmeticOverflow):
            q64_to_decimal(1 << 128)


class TestDecimalContext(unittest.TestCase):
    def test_precision_applies_inside_and_restores(self):
        with localcontext() as outer:
            outer.prec = 6
            with decimal_context():
                self.assertEqual(getcontext().prec, DECIMAL_PRECISION)
                third = Decimal(1) / Decimal(3)
            self.assertEqual(getcontext().prec, 6)
        self.assertEqual(len(third.as_tuple().digits), DECIMAL_PRECISION)


if __name__ == "__main__":
    unittest.main()

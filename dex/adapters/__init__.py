"""
Curve math for the supported AMM families.
"""

from . import concentrated, constant_product

__all__ = ["constant_product", "concentrated"]

"""
Module 'discounts' (feature-first): application et normalisation des codes de réduction.
"""
from .normalize import extract_raw_discount, normalize_discount, round_to_half_unit
from .service import DiscountResult, apply_discount_code, classify_coupon_error

__all__ = [
    "extract_raw_discount",
    "normalize_discount",
    "round_to_half_unit",
    "DiscountResult",
    "apply_discount_code",
    "classify_coupon_error",
]

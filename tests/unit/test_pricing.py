from datetime import date
from fractions import Fraction

from checkout.catalog.models import Catalog, CatalogProduct
from checkout.orders.models import Order
from checkout.subscriptions.pricing import (
    calculate_expected_partial_month_price,
    days_remaining_in_month,
    expected_partial_month_price,
    round_half_up,
    verify_subscription_pricing,
)

def _order(price, start):
    return Order.from_api({
        "id": 9001,
        "price": {"amount": price},
        "subscriptionItems": [{
            "id": 1,
            "subscriptionProduct": {"id": 134},
            "startDate": start,
            "initialPaymentPeriod": {"start": start, "end": "2026-12-31"},
            "price": {"amount": price},
        }],
    })

def test_partial_month_ten_days_of_thirty():
    exp = expected_partial_month_price(46900, date(2026, 11, 21))
    assert exp.days_remaining == 10
    assert exp.days_in_month == 30
    assert exp.amount_in_minor_units == 15633

def test_first_day_of_month_is_full_price():
    assert expected_partial_month_price(46900, date(2026, 11, 1)).amount_in_minor_units == 46900

def test_last_day_of_month_counts_one_day():
    exp = expected_partial_month_price(46900, date(2026, 10, 31))
    assert exp.days_remaining == 1
    assert exp.amount_in_minor_units == 1513

def test_leap_february():
    assert days_remaining_in_month(date(2028, 2, 29)) == 1
    assert expected_partial_month_price(29000, date(2028, 2, 1)).days_in_month == 29

def test_round_half_up_not_bankers():
    assert round_half_up(Fraction(5, 2)) == 3
    assert round_half_up(Fraction(3, 2)) == 2
    assert round_half_up(Fraction(7, 3)) == 2

def test_expected_price_unknown_product_is_none():
    catalog = Catalog([CatalogProduct(id=134, price=46900)])
    assert calculate_expected_partial_month_price("membership-999", date(2026, 11, 21), catalog) is None
    assert calculate_expected_partial_month_price("membership-134", date(2026, 11, 21), catalog).amount_in_minor_units == 15633

def test_verify_detects_ignored_start_date_and_full_price():
    today = date(2026, 11, 21)
    expected = expected_partial_month_price(46900, today)
    res = verify_subscription_pricing(_order(46900, "2026-12-01T00:00:00"), 134, expected, today)
    assert res.start_date_correct is False
    assert res.price_correct is False
    assert res.is_correct is False
    assert res.price_difference == 46900 - 15633
    assert res.days_until_start == 10

def test_verify_within_tolerance():
    today = date(2026, 11, 21)
    expected = expected_partial_month_price(46900, today)
    res = verify_subscription_pricing(_order(15700, "2026-11-21"), "membership-134", expected, today)
    assert res.price_correct is True
    assert res.is_correct is True
    assert res.price_difference == 67

def test_verify_start_tomorrow_is_accepted():
    today = date(2026, 11, 21)
    res = verify_subscription_pricing(_order(15633, "2026-11-22"), 134, None, today)
    assert res.start_date_correct is True

def test_verify_without_expectation_cannot_flag_price():
    today = date(2026, 11, 21)
    res = verify_subscription_pricing(_order(46900, "2026-12-01"), 134, None, today)
    assert res.price_correct is True
    assert res.expected_price_minor_units is None
    assert res.is_correct is False

from decimal import Decimal

from checkout.domain.totals import calculate_totals, to_money


def test_free_shipping_above_threshold():
    totals = calculate_totals([(Decimal("2800"), 2)])

    assert totals.total_items == 2
    assert totals.subtotal == Decimal("5600.00")
    assert totals.tax == Decimal("1008.00")
    assert totals.shipping == Decimal("0.00")
    assert totals.total == Decimal("6608.00")


def test_flat_shipping_for_small_orders():
    totals = calculate_totals([(Decimal("100"), 2)])

    assert totals.subtotal == Decimal("200.00")
    assert totals.tax == Decimal("36.00")
    assert totals.shipping == Decimal("50.00")
    assert totals.total == Decimal("286.00")


def test_threshold_itself_still_pays_shipping():
    totals = calculate_totals([(Decimal("250"), 2)])

    assert totals.subtotal == Decimal("500.00")
    assert totals.shipping == Decimal("50.00")


def test_empty_cart_is_all_zero():
    totals = calculate_totals([])

    assert totals.total_items == 0
    assert totals.subtotal == totals.tax == totals.shipping == totals.total == Decimal("0")


def test_tax_rounds_half_up_to_cents():
    totals = calculate_totals([(Decimal("10.25"), 1)])

    # 10.25 * 0.18 = 1.845
    assert totals.tax == Decimal("1.85")
    assert totals.total == totals.subtotal + totals.tax + totals.shipping


def test_custom_rates():
    totals = calculate_totals(
        [(Decimal("40"), 1)],
        tax_rate=Decimal("0.05"),
        free_shipping_threshold=Decimal("30"),
        flat_shipping_fee=Decimal("99"),
    )

    assert totals.tax == Decimal("2.00")
    assert totals.shipping == Decimal("0.00")
    assert totals.total == Decimal("42.00")


def test_to_money_accepts_floats_and_strings():
    assert to_money(0.1 + 0.2) == Decimal("0.30")
    assert to_money("19.995") == Decimal("20.00")

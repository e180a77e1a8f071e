"""TaxCalculator.compute_line: price, percentage tax, flat tax stacking and warnings."""

from datetime import datetime
from decimal import Decimal

import pytest

from wholesale.services.price_resolver import PriceResolver
from wholesale.services.snapshots import CustomerSnapshot, ProductSnapshot, FlatTaxRuleSnapshot, PriceMemorySnapshot
from wholesale.services.tax_calculator import TaxCalculator, LineTaxResult
from wholesale.services.tax_rule_registry import TaxRuleRegistry
from wholesale.validation import ValidationError

AS_OF = datetime(2026, 10, 1, 12, 0, 0)

ALL_TIERS = frozenset({1, 2, 3, 4, 5})
LARGE_CIGAR = FlatTaxRuleSnapshot(id=1, name="Large Cigar Tax", tax_amount_cents=60, customer_tiers=ALL_TIERS)
LITTLE_CIGAR = FlatTaxRuleSnapshot(id=2, name="Little Cigar Tax", tax_amount_cents=45, customer_tiers=ALL_TIERS)
COOK_ONLY = FlatTaxRuleSnapshot(id=3, name="Cook County Tax", tax_amount_cents=25,
                                customer_tiers=ALL_TIERS, county_restriction="Cook")
RETIRED = FlatTaxRuleSnapshot(id=4, name="Retired Tax", tax_amount_cents=99,
                              customer_tiers=ALL_TIERS, is_active=False)

ELIGIBLE = CustomerSnapshot(id=1, customer_level=2, apply_flat_tax=True, county="Cook", postal_code="60601")


def calculator(rules=(LARGE_CIGAR, LITTLE_CIGAR, COOK_ONLY, RETIRED), memories=None):
    return TaxCalculator(
        PriceResolver(memories or {}, as_of=AS_OF),
        TaxRuleRegistry(rules),
    )


def test_end_to_end_example_line():
    product = ProductSnapshot(id=10, price_cents=1000, tax_rate_bps=1000, flat_tax_ids=(1,))
    line = calculator().compute_line(ELIGIBLE, product, 5)

    assert line.line_base_cents == 5000
    assert line.percentage_tax_cents == 500
    assert line.flat_tax_cents == 300
    assert line.total_tax_cents == 800
    assert line.line_total_cents == 5800
    assert line.tax_config_warning is False


def test_two_flat_taxes_stack_per_unit():
    product = ProductSnapshot(id=11, price_cents=200, flat_tax_ids=(1, 2))
    line = calculator().compute_line(ELIGIBLE, product, 10)

    assert line.flat_tax_cents == 1050
    assert [(t.id, t.amount_cents) for t in line.applied_flat_taxes] == [(1, 600), (2, 450)]
    assert line.total_tax_cents == 1050


def test_tier_one_without_flag_gets_no_flat_tax_even_when_product_lists_rules():
    tier_one = CustomerSnapshot(id=2, customer_level=1, apply_flat_tax=False, county="Cook")
    product = ProductSnapshot(id=12, price_cents=1000, tax_rate_bps=1000, flat_tax_ids=(1, 2))
    line = calculator().compute_line(tier_one, product, 3)

    assert line.flat_tax_cents == 0
    assert line.applied_flat_taxes == ()
    # Same flag gates percentage tax
    assert line.percentage_tax_cents == 0


def test_tax_exempt_customer_pays_flat_tax_but_no_percentage_tax():
    exempt = CustomerSnapshot(id=4, customer_level=2, apply_flat_tax=True, tax_exempt=True, county="Cook")
    product = ProductSnapshot(id=18, price_cents=1000, tax_rate_bps=1000, flat_tax_ids=(1,))
    line = calculator().compute_line(exempt, product, 5)

    assert line.percentage_tax_cents == 0
    assert line.flat_tax_cents == 300
    assert [t.id for t in line.applied_flat_taxes] == [1]


def test_county_restricted_rule_skipped_outside_county():
    dupage = CustomerSnapshot(id=3, customer_level=2, apply_flat_tax=True, county="DuPage")
    product = ProductSnapshot(id=13, price_cents=1000, flat_tax_ids=(3,))
    assert calculator().compute_line(dupage, product, 4).flat_tax_cents == 0
    assert calculator().compute_line(ELIGIBLE, product, 4).flat_tax_cents == 100


def test_percentage_tax_rounds_once_per_line_not_per_unit():
    product = ProductSnapshot(id=14, price_cents=333, tax_rate_bps=1000)
    line = calculator().compute_line(ELIGIBLE, product, 3)

    assert line.line_base_cents == 999
    # 99.9 -> 100; rounding each unit first would give 99
    assert line.percentage_tax_cents == 100


def test_half_cent_rounds_up():
    product = ProductSnapshot(id=15, price_cents=10, tax_rate_bps=500)
    assert calculator().compute_line(ELIGIBLE, product, 1).percentage_tax_cents == 1


def test_sub_cent_flat_tax_rounds_on_the_line_total():
    half_cent = FlatTaxRuleSnapshot(id=5, name="Half Cent Tax", tax_amount_cents=Decimal("0.5"), customer_tiers=ALL_TIERS)
    product = ProductSnapshot(id=19, price_cents=100, flat_tax_ids=(5,))
    line = calculator(rules=(half_cent,)).compute_line(ELIGIBLE, product, 3)

    # $0.005 x 3 = $0.015 -> $0.02
    assert line.flat_tax_cents == 2
    assert line.applied_flat_taxes[0].unit_amount_cents == Decimal("0.5")
    assert line.to_dict()["applied_flat_taxes"][0]["unit_amount_cents"] == "0.5"


def test_fractional_percentage_rate_is_applied_exactly():
    product = ProductSnapshot(id=20, price_cents=10000, tax_rate_bps=Decimal("1012.5"))
    line = calculator().compute_line(ELIGIBLE, product, 1)

    assert line.percentage_tax_cents == 1013
    assert LineTaxResult.from_dict(line.to_dict()) == line


def test_inactive_rule_is_skipped_with_warning():
    product = ProductSnapshot(id=16, price_cents=1000, flat_tax_ids=(1, 4))
    line = calculator().compute_line(ELIGIBLE, product, 2)

    assert line.flat_tax_cents == 120
    assert line.tax_config_warning is True
    assert line.warnings == ("flat tax rule 4 is inactive",)


def test_missing_rule_is_skipped_with_warning():
    product = ProductSnapshot(id=17, price_cents=1000, flat_tax_ids=(2, 404))
    line = calculator().compute_line(ELIGIBLE, product, 2)

    assert line.flat_tax_cents == 90
    assert line.tax_config_warning is True
    assert "flat tax rule 404 not found" in line.warnings


@pytest.mark.parametrize("quantity", [0, -1, 1.5, "3", None, True])
def test_invalid_quantity_raises(quantity):
    product = ProductSnapshot(id=18, price_cents=1000)
    with pytest.raises(ValidationError):
        calculator().compute_line(ELIGIBLE, product, quantity)


def test_unpriced_product_raises():
    with pytest.raises(ValidationError):
        calculator().compute_line(ELIGIBLE, ProductSnapshot(id=19), 1)


def test_staff_override_beats_price_memory_and_tiers():
    product = ProductSnapshot(id=20, price_cents=1000, tier_prices=(900, 800, None, None, None))
    memories = {20: PriceMemorySnapshot(id=1, customer_id=1, product_id=20, last_paid_price_cents=700)}
    calc = calculator(memories=memories)

    assert calc.compute_line(ELIGIBLE, product, 1).unit_price_cents == 700
    overridden = calc.compute_line(ELIGIBLE, product, 1, unit_price_override_cents=650)
    assert overridden.unit_price_cents == 650
    assert overridden.price_source == "override"


def test_negative_override_rejected():
    product = ProductSnapshot(id=21, price_cents=1000)
    with pytest.raises(ValidationError):
        calculator().compute_line(ELIGIBLE, product, 1, unit_price_override_cents=-5)


def test_identical_inputs_give_identical_output():
    product = ProductSnapshot(id=22, price_cents=1234, tax_rate_bps=725, flat_tax_ids=(1, 2, 3))
    first = calculator().compute_line(ELIGIBLE, product, 7)
    second = calculator().compute_line(ELIGIBLE, product, 7)

    assert first == second
    assert first.to_dict() == second.to_dict()


def test_line_result_restores_from_its_dict():
    product = ProductSnapshot(id=23, price_cents=1000, tax_rate_bps=1000, flat_tax_ids=(1, 2),
                              is_tobacco_product=True, tobacco_product_type="cigars")
    line = calculator().compute_line(ELIGIBLE, product, 3)
    assert LineTaxResult.from_dict(line.to_dict()) == line

"""TaxRuleRegistry: flat tax eligibility and percentage tax gating."""

import pytest

from wholesale.services.snapshots import CustomerSnapshot, ProductSnapshot, FlatTaxRuleSnapshot
from wholesale.services.tax_rule_registry import TaxRuleRegistry

CIGAR_TAX = FlatTaxRuleSnapshot(id=1, name="Cook County Cigar", tax_amount_cents=60,
                                customer_tiers=frozenset({2, 3, 4, 5}), county_restriction="Cook")
STATE_TAX = FlatTaxRuleSnapshot(id=2, name="IL Little Cigar", tax_amount_cents=45,
                                customer_tiers=frozenset({1, 2, 3, 4, 5}))
CHICAGO_TAX = FlatTaxRuleSnapshot(id=3, name="Chicago Zip Tax", tax_amount_cents=10,
                                  customer_tiers=frozenset({2}), zip_code_restriction="60601")

CIGARS = ProductSnapshot(id=10, price_cents=1000, tax_rate_bps=1000, flat_tax_ids=(2, 1, 3),
                         is_tobacco_product=True, tobacco_product_type="cigars")


def registry(**kwargs):
    return TaxRuleRegistry([CIGAR_TAX, STATE_TAX, CHICAGO_TAX], **kwargs)


def cust(**overrides):
    fields = dict(id=1, customer_level=2, apply_flat_tax=True, county="Cook", postal_code="60601")
    fields.update(overrides)
    return CustomerSnapshot(**fields)


def test_applicable_rules_follow_product_assignment_order():
    rules = registry().applicable_flat_taxes(CIGARS, cust())
    assert [r.id for r in rules] == [2, 1, 3]


def test_customer_without_flat_tax_flag_gets_no_flat_tax():
    tier_one = cust(customer_level=1, apply_flat_tax=False)
    assert registry().applicable_flat_taxes(CIGARS, tier_one) == ()


def test_tax_exempt_customer_still_pays_flat_tax():
    exempt = cust(tax_exempt=True)
    rules = registry().applicable_flat_taxes(CIGARS, exempt)
    assert [r.id for r in rules] == [2, 1, 3]
    assert registry().percentage_tax_rate_bps(CIGARS, exempt) == 0


def test_tier_outside_rule_tiers_is_skipped():
    rules = registry().applicable_flat_taxes(CIGARS, cust(customer_level=3))
    assert [r.id for r in rules] == [2, 1]


def test_county_restriction_excludes_other_counties():
    rules = registry().applicable_flat_taxes(CIGARS, cust(county="DuPage"))
    assert 1 not in [r.id for r in rules]


def test_county_and_zip_compare_trimmed_and_case_insensitive():
    rules = registry().applicable_flat_taxes(CIGARS, cust(county="  cook ", postal_code=" 60601"))
    assert [r.id for r in rules] == [2, 1, 3]


def test_missing_customer_county_fails_county_restriction():
    rules = registry().applicable_flat_taxes(CIGARS, cust(county=None))
    assert [r.id for r in rules] == [2, 3]


def test_zip_restriction_excludes_other_zip_codes():
    rules = registry().applicable_flat_taxes(CIGARS, cust(postal_code="60614"))
    assert [r.id for r in rules] == [2, 1]


def test_out_of_range_customer_level_is_clamped_for_eligibility():
    level_zero = cust(customer_level=0)
    rules = registry().applicable_flat_taxes(CIGARS, level_zero)
    assert [r.id for r in rules] == [2]


def test_inactive_and_missing_rules_are_reported_and_not_applied():
    inactive = FlatTaxRuleSnapshot(id=4, name="Old Tax", tax_amount_cents=99,
                                   customer_tiers=frozenset({2}), is_active=False)
    product = ProductSnapshot(id=11, price_cents=500, flat_tax_ids=(2, 4, 77))
    reg = TaxRuleRegistry([STATE_TAX, inactive])

    assert reg.missing_rule_ids(product) == (77,)
    assert reg.inactive_rule_ids(product) == (4,)
    assert [r.id for r in reg.applicable_flat_taxes(product, cust())] == [2]


def test_rule_not_assigned_to_product_never_applies():
    product = ProductSnapshot(id=12, price_cents=500, flat_tax_ids=())
    assert registry().applicable_flat_taxes(product, cust()) == ()


@pytest.mark.parametrize("apply_flat_tax,tax_exempt,expected", [
    (True, False, 1000),
    (False, False, 0),
    (True, True, 0),
    (False, True, 0),
])
def test_percentage_rate_gated_by_flat_tax_flag_by_default(apply_flat_tax, tax_exempt, expected):
    c = cust(apply_flat_tax=apply_flat_tax, tax_exempt=tax_exempt)
    assert registry().percentage_tax_rate_bps(CIGARS, c) == expected


def test_percentage_rate_can_be_decoupled_from_flat_tax_flag():
    reg = registry(percentage_requires_flat_tax_flag=False)
    assert reg.percentage_tax_rate_bps(CIGARS, cust(apply_flat_tax=False)) == 1000
    assert reg.percentage_tax_rate_bps(CIGARS, cust(apply_flat_tax=False, tax_exempt=True)) == 0

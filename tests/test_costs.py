import itertools

import pytest

from warfront.costs import compute_cost, perk_reduction
from warfront.errors import InvalidPerkValue
from warfront.models import Perk

CATEGORY = "territory_cost"


def test_no_perks_returns_base_cost():
    cost = compute_cost(500, 500, [], CATEGORY)
    assert (cost.metal, cost.energy) == (500, 500)


def test_only_matching_category_counts():
    perks = [Perk(CATEGORY, 10), Perk(CATEGORY, 15), Perk("research_speed", 50)]
    assert perk_reduction(perks, CATEGORY) == 25
    cost = compute_cost(2000, 2000, perks, CATEGORY)
    assert (cost.metal, cost.energy) == (1500, 1500)


def test_reduction_is_floored():
    cost = compute_cost(500, 333, [Perk(CATEGORY, 33)], CATEGORY)
    # 500 * 0.67 = 335, 333 * 0.67 = 223.11
    assert (cost.metal, cost.energy) == (335, 223)


def test_reduction_clamped_at_ninety_percent():
    perks = [Perk(CATEGORY, 60), Perk(CATEGORY, 50)]
    assert perk_reduction(perks, CATEGORY) == 90
    cost = compute_cost(500, 500, perks, CATEGORY)
    assert (cost.metal, cost.energy) == (50, 50)


def test_positive_base_never_free():
    cost = compute_cost(1, 5, [Perk(CATEGORY, 90)], CATEGORY)
    assert (cost.metal, cost.energy) == (1, 1)


def test_zero_base_stays_zero():
    cost = compute_cost(0, 100, [Perk(CATEGORY, 20)], CATEGORY)
    assert (cost.metal, cost.energy) == (0, 80)


@pytest.mark.parametrize("value", [-1, 101, 250])
def test_out_of_range_perk_rejected(value):
    with pytest.raises(InvalidPerkValue):
        compute_cost(500, 500, [Perk(CATEGORY, value)], CATEGORY)


def test_out_of_range_perk_rejected_in_other_category():
    with pytest.raises(InvalidPerkValue):
        perk_reduction([Perk("research_speed", 120)], CATEGORY)


def test_cost_bounded_by_base_for_any_perk_mix():
    values = [0, 1, 25, 50, 89, 100]
    for a, b in itertools.product(values, repeat=2):
        perks = [Perk(CATEGORY, a), Perk(CATEGORY, b)]
        for base in (1, 7, 500, 2000):
            cost = compute_cost(base, base, perks, CATEGORY)
            assert 1 <= cost.metal <= base
            assert cost.metal >= base * 10 // 100

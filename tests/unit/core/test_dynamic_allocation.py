from decimal import Decimal

import pytest

from deposit_advise.core.allocation import DynamicAllocationStrategy, annual_benefit_priority
from deposit_advise.core.config import RestrictedInstitution
from deposit_advise.core.money import Money
from tests.factories import account, allocation_context, optimization_config, product


def _allocate(**kwargs):
    return DynamicAllocationStrategy().allocate(allocation_context(**kwargs))


def _moves(outcome):
    return [
        (item.source.account_id, item.target.product_id, item.source.amount.amount)
        for item in outcome.recommendations
    ]


@pytest.mark.parametrize(
    "benefit,expected",
    [
        ("12000", "URGENT"),
        ("10000", "URGENT"),
        ("5000", "HIGH"),
        ("1000", "MEDIUM"),
        ("999", "LOW"),
    ],
)
def test_priority_follows_annual_benefit(benefit, expected):
    assert annual_benefit_priority(Money.of(benefit)) == expected


def test_transfer_shrinks_to_remaining_headroom_then_moves_on():
    outcome = _allocate(
        accounts=[
            account("full", "100001", "80000", "5.0"),
            account("mover", "900009", "20000", "3.0"),
        ],
        products=[product("atlas", "100001", "5.0"), product("beacon", "200002", "4.0")],
    )
    by_id = {item.recommendation_id: item for item in outcome.recommendations}
    topped_up, remainder = by_id["dyn_0001"], by_id["dyn_0002"]
    assert (topped_up.target.product_id, topped_up.source.amount) == ("atlas", Money.of("5000"))
    assert (remainder.target.product_id, remainder.source.amount) == ("beacon", Money.of("15000"))
    assert topped_up.compliance.resulting_exposure == Money.of("85000")
    assert topped_up.compliance.resulting_status == "AT_LIMIT"
    assert remainder.compliance.headroom_after == Money.of("70000")
    assert [item.recommendation_id for item in outcome.recommendations] == ["dyn_0002", "dyn_0001"]
    assert outcome.diagnostics.iterations == 2
    assert outcome.diagnostics.warnings == []


def test_existing_account_bonus_can_outrank_a_higher_rate():
    outcome = _allocate(
        accounts=[
            account("atlas_acc", "100001", "10000", "3.0", bank_name="Atlas Bank"),
            account("cedar_acc", "300003", "50000", "3.0", bank_name="Cedar Bank"),
        ],
        products=[
            product("atlas", "100001", "4.0", bank_name="Atlas Bank", platform="Raisin"),
            product("beacon", "200002", "4.1", bank_name="Beacon Savings", platform="Raisin"),
        ],
    )
    assert [item.recommendation_id for item in outcome.recommendations] == ["dyn_0001", "dyn_0002"]
    topped_up = outcome.recommendations[0]
    assert (topped_up.source.account_id, topped_up.target.product_id) == ("cedar_acc", "atlas")
    assert topped_up.benefits.bonus_type == "EXISTING_ACCOUNT"
    assert topped_up.benefits.convenience_bonus.value == Decimal("0.25")
    assert topped_up.benefits.annual_benefit.amount == Decimal("500.00")
    assert topped_up.recommendation_reason == "Topping up existing account - no setup required"
    assert outcome.recommendations[1].target.product_id == "beacon"


def test_preferred_platform_bonus_applies_to_the_configured_platform():
    outcome = _allocate(
        accounts=[account("acc_1", "900009", "20000", "3.0")],
        products=[
            product("direct", "100001", "4.2", platform="Direct"),
            product("flag", "200002", "4.15", platform="Flagstone"),
        ],
        config=optimization_config(preferred_platform="Flagstone"),
    )
    assert _moves(outcome) == [("acc_1", "flag", Decimal("20000"))]
    assert outcome.recommendations[0].benefits.bonus_type == "PREFERRED_PLATFORM"
    assert outcome.recommendations[0].display_mode == "OR"


def test_unidentified_products_are_skipped_unless_allowed():
    accounts = [account("acc_1", "900009", "20000", "3.0")]
    products = [
        product("mystery", None, "6.0", bank_name="Mystery Bank"),
        product("known", "100001", "4.0"),
    ]

    default = _allocate(accounts=accounts, products=products)
    assert _moves(default) == [("acc_1", "known", Decimal("20000"))]
    assert [alert.product_id for alert in default.missing_frn_alerts] == ["mystery"]

    permissive = _allocate(
        accounts=accounts,
        products=products,
        config=optimization_config(allow_no_frn_products="true"),
    )
    assert _moves(permissive) == [("acc_1", "mystery", Decimal("20000"))]
    compliance = permissive.recommendations[0].compliance
    assert compliance.missing_frn
    assert compliance.resulting_status == "UNVERIFIED"
    assert compliance.resulting_exposure is None
    assert permissive.recommendations[0].risks


def test_restricted_institutions_are_avoided_when_disallowed():
    outcome = _allocate(
        accounts=[account("acc_1", "900009", "20000", "3.0")],
        products=[product("crescent", "700007", "5.0"), product("plain", "100001", "4.0")],
        config=optimization_config(
            restricted=[RestrictedInstitution(frn="700007", bank_name="Crescent Bank")],
            allow_sharia_banks="false",
        ),
    )
    assert _moves(outcome) == [("acc_1", "plain", Decimal("20000"))]


def test_small_sources_and_small_benefits_are_ignored():
    outcome = _allocate(
        accounts=[
            account("dust", "900009", "800", "1.0"),
            account("small", "800008", "3000", "3.0"),
        ],
        products=[product("p", "100001", "4.0")],
    )
    assert outcome.recommendations == []
    assert outcome.diagnostics.iterations == 0


def test_iteration_ceiling_stops_repeated_capped_moves():
    outcome = _allocate(
        accounts=[account("acc_1", "900009", "50000", "3.0")],
        products=[product("capped", "100001", "5.0", max_deposit=Decimal("10000"))],
    )
    assert _moves(outcome) == [("acc_1", "capped", Decimal("10000"))]
    assert outcome.diagnostics.iterations == 1
    assert outcome.diagnostics.warnings == ["Stopped after the iteration safety limit of 1"]


def test_rule_events_are_counted_once_per_chosen_move():
    outcome = _allocate(
        accounts=[
            account("acc_1", "900009", "20000", "3.0"),
            account("acc_2", "800008", "30000", "3.0"),
        ],
        products=[product("p", "100001", "4.5"), product("q", "200002", "4.4")],
    )
    assert len(outcome.recommendations) == 2
    assert all("rateImprovementValid" in item.rule_events for item in outcome.recommendations)
    assert outcome.diagnostics.rule_event_counts["annualBenefitValid"] == 2
    assert outcome.diagnostics.rule_event_counts["rateImprovementValid"] == 2


def test_repeated_runs_are_identical():
    kwargs = dict(
        accounts=[
            account("a", "900009", "120000", "3.0"),
            account("b", "800008", "40000", "3.2"),
        ],
        products=[
            product("x", "100001", "5.0"),
            product("y", "200002", "5.0"),
            product("z", "300003", "4.9"),
        ],
    )
    first = _allocate(**kwargs)
    second = _allocate(**kwargs)
    assert first.model_dump() == second.model_dump()

from decimal import Decimal

from deposit_advise.core.allocation import TrackedAllocationStrategy
from deposit_advise.core.money import Money
from deposit_advise.core.rules import RuleDefinition
from tests.factories import account, allocation_context, optimization_config, product, rules_engine


def _allocate(**kwargs):
    return TrackedAllocationStrategy().allocate(allocation_context(**kwargs))


def test_shared_headroom_is_shrunk_then_exhausted_in_discovery_order():
    outcome = _allocate(
        accounts=[
            account("holder", "100001", "70000", "5.0"),
            account("a", "900009", "20000", "3.0"),
            account("b", "800008", "20000", "3.5"),
        ],
        products=[product("atlas", "100001", "5.0")],
    )
    assert len(outcome.recommendations) == 1
    recommendation = outcome.recommendations[0]
    assert recommendation.recommendation_id == "trk_0001"
    assert recommendation.source.account_id == "a"
    assert recommendation.source.amount == Money.of("15000")
    assert recommendation.benefits.annual_benefit.amount == Decimal("300.00")
    assert recommendation.compliance.resulting_status == "AT_LIMIT"
    assert outcome.diagnostics.dropped == {"insufficient_headroom": 1}


def test_per_account_cap_limits_alternatives():
    outcome = _allocate(
        accounts=[account("acc_1", "900009", "20000", "3.0")],
        products=[
            product("p_40", "100001", "4.0"),
            product("p_42", "200002", "4.2"),
            product("p_41", "300003", "4.1"),
        ],
        config=optimization_config(max_recommendations_per_account="2"),
    )
    assert [item.target.product_id for item in outcome.recommendations] == ["p_42", "p_41"]
    assert outcome.diagnostics.dropped == {"account_cap": 1}
    assert {item.display_notes for item in outcome.recommendations} == {
        "Choose ONE of these 2 alternatives"
    }


def test_chunks_of_a_large_account_bypass_the_cap():
    outcome = _allocate(
        accounts=[account("big", "900009", "300000", "3.0")],
        products=[
            product("p1", "100001", "4.4"),
            product("p2", "200002", "4.3"),
            product("p3", "300003", "4.2"),
            product("p4", "400004", "4.1"),
        ],
    )
    recommendations = outcome.recommendations
    assert len(recommendations) == 4
    assert sum(item.source.amount.amount for item in recommendations) == Decimal("300000")
    assert {item.display_mode for item in recommendations} == {"AND"}
    assert {item.type for item in recommendations} == {"DIVERSIFICATION"}
    assert all(
        "Part of a diversification split across institutions" in item.implementation_notes
        for item in recommendations
    )
    assert max(item.source.amount.amount for item in recommendations) == Decimal("85000")


def test_unidentified_targets_become_alerts_not_recommendations():
    outcome = _allocate(
        accounts=[account("acc_1", "900009", "10000", "3.0")],
        products=[
            product("mystery", None, "6.0", bank_name="Mystery Bank"),
            product("known", "100001", "4.0"),
        ],
    )
    assert [item.target.product_id for item in outcome.recommendations] == ["known"]
    assert outcome.diagnostics.dropped == {"missing_frn": 1}
    assert [alert.product_id for alert in outcome.missing_frn_alerts] == ["mystery"]
    assert outcome.missing_frn_alerts[0].potential_benefit.amount == Decimal("240.00")


def test_opportunity_missing_a_loaded_validation_event_is_dropped():
    config = optimization_config()
    strict = RuleDefinition.from_raw(
        rule_name="transfer_amount_valid",
        conditions={"fact": "transferAmount", "operator": "greaterThanInclusive", "value": 50000},
        event_type="transferAmountValid",
    )
    outcome = _allocate(
        accounts=[account("acc_1", "900009", "20000", "3.0")],
        products=[product("p", "100001", "4.5")],
        config=config,
        rules=rules_engine(config, [strict]),
    )
    assert outcome.recommendations == []
    assert outcome.diagnostics.dropped == {"rule_validation": 1}


def test_priority_uses_benefit_tiers_with_rule_upgrade():
    outcome = _allocate(
        accounts=[
            account("small", "900009", "10000", "3.0"),
            account("modest", "800008", "10000", "3.5"),
        ],
        products=[product("p", "100001", "4.0")],
    )
    by_source = {item.source.account_id: item for item in outcome.recommendations}
    assert by_source["small"].benefits.annual_benefit.amount == Decimal("80.00")
    assert by_source["small"].priority == "MEDIUM"
    assert "modest" not in by_source

    upgraded = _allocate(
        accounts=[account("acc_1", "900009", "20000", "3.0")],
        products=[product("p", "100001", "4.0")],
    )
    assert upgraded.recommendations[0].benefits.annual_benefit.amount == Decimal("160.00")
    assert upgraded.recommendations[0].priority == "HIGH"

from decimal import Decimal

from deposit_advise.core.config import RestrictedInstitution
from deposit_advise.core.discovery import (
    MISSING_FRN_ACTION,
    OpportunityDiscovery,
    suggested_override_sql,
)
from deposit_advise.core.rules import RuleDefinition
from tests.factories import account, optimization_config, product, rules_engine


def _discovery(config=None, rules=None):
    config = config or optimization_config()
    return OpportunityDiscovery(config, rules_engine(config, rules))


def test_single_opportunities_rank_by_improvement_then_benefit():
    opportunities = _discovery().discover(
        [account("acc_1", "900009", "20000", "3.0")],
        [
            product("p_40", "100001", "4.0"),
            product("p_42", "200002", "4.2"),
            product("p_41", "300003", "4.1"),
        ],
    )
    assert [item.product.product_id for item in opportunities] == ["p_42", "p_41", "p_40"]
    assert {item.transfer_amount.amount for item in opportunities} == {Decimal("16000.0")}
    assert [item.annual_benefit.amount for item in opportunities] == [
        Decimal("192"),
        Decimal("176"),
        Decimal("160"),
    ]
    assert not any(item.is_chunk for item in opportunities)


def test_large_account_is_chunked_round_robin_across_targets():
    opportunities = _discovery().discover(
        [account("big", "900009", "200000", "4.0")],
        [product("x", "100001", "5.0"), product("y", "200002", "4.8")],
    )
    summary = [
        (item.product.product_id, item.transfer_amount.amount, item.chunk_index)
        for item in opportunities
    ]
    assert summary == [
        ("x", Decimal("85000"), 0),
        ("x", Decimal("30000"), 2),
        ("y", Decimal("85000"), 1),
    ]
    assert all(item.is_chunk and item.chunk_count == 3 for item in opportunities)
    assert sum(item.transfer_amount.amount for item in opportunities) == Decimal("200000")


def test_chunking_follows_the_chunk_rule_when_one_is_loaded():
    opportunities = _discovery(rules=[]).discover(
        [account("big", "900009", "100000", "4.0")],
        [product("x", "100001", "5.0")],
    )
    assert [item.transfer_amount.amount for item in opportunities] == [
        Decimal("85000"),
        Decimal("15000"),
    ]
    assert all(item.is_chunk for item in opportunities)

    never_chunk = RuleDefinition.from_raw(
        rule_name="chunk_large_account",
        conditions={"fact": "accountBalance", "operator": "greaterThan", "value": 10000000},
        event_type="chunkLargeAccount",
    )
    single = _discovery(rules=[never_chunk]).discover(
        [account("big", "900009", "100000", "4.0")],
        [product("x", "100001", "5.0")],
    )
    assert [item.is_chunk for item in single] == [False]
    assert single[0].transfer_amount.amount == Decimal("80000.0")


def test_candidates_skip_same_institution_weak_rates_and_small_benefits():
    opportunities = _discovery().discover(
        [
            account("acc_1", "100001", "20000", "3.0"),
            account("tiny", "200002", "500", "1.0"),
            account("small", "300003", "2000", "3.0"),
        ],
        [
            product("same", "100001", "5.0"),
            product("barely", "400004", "3.05"),
            product("good", "500005", "4.0"),
        ],
    )
    assert [(item.account.account_id, item.product.product_id) for item in opportunities] == [
        ("acc_1", "good")
    ]


def test_restricted_institutions_only_filtered_when_disallowed():
    accounts = [account("acc_1", "900009", "20000", "3.0")]
    products = [product("crescent", "700007", "5.0"), product("plain", "100001", "4.0")]
    restricted = [RestrictedInstitution(frn="700007", bank_name="Crescent Bank")]

    allowed = _discovery(optimization_config(restricted=restricted)).discover(accounts, products)
    assert [item.product.product_id for item in allowed] == ["crescent", "plain"]

    blocked = _discovery(
        optimization_config(restricted=restricted, allow_sharia_banks="false")
    ).discover(accounts, products)
    assert [item.product.product_id for item in blocked] == ["plain"]


def test_product_minimum_deposit_and_fixed_terms_are_respected():
    opportunities = _discovery().discover(
        [account("acc_1", "900009", "20000", "3.0")],
        [
            product("premium", "100001", "5.0", min_deposit=Decimal("50000")),
            product("fixed", "200002", "6.0", liquidity_tier="fixed_12m"),
            product("ok", "300003", "4.0"),
        ],
    )
    assert [item.product.product_id for item in opportunities] == ["ok"]


def test_fixed_term_accounts_do_not_fund_moves_by_default():
    discovery = _discovery()
    accounts = [
        account("easy", "100001", "10000", "3.0"),
        account("fixed", "200002", "10000", "3.0", liquidity_tier="fixed_12m", sub_type="Fixed"),
        account("closed", "300003", "10000", "3.0", is_active=False),
    ]
    assert [item.account_id for item in discovery.funding_accounts(accounts)] == ["easy"]

    relaxed = _discovery(optimization_config(easy_access_only="false"))
    assert [item.account_id for item in relaxed.funding_accounts(accounts)] == ["easy", "fixed"]


def test_missing_frn_alerts_pick_best_product_per_bank():
    alerts = _discovery().detect_missing_frn(
        [account("a", "100001", "10000", "3.0"), account("b", "200002", "20000", "3.5")],
        [
            product("m_hi", None, "6.0", bank_name="Mystery Bank", platform="Raisin"),
            product("m_lo", None, "5.5", bank_name="Mystery Bank"),
            product("fixed", None, "7.0", bank_name="Lockbox", liquidity_tier="fixed_12m"),
            product("known", "300003", "6.0"),
        ],
    )
    assert len(alerts) == 1
    alert = alerts[0]
    assert alert.product_id == "m_hi"
    assert alert.platform == "Raisin"
    assert [item.account_id for item in alert.affected_accounts] == ["a", "b"]
    assert alert.potential_benefit.amount == Decimal("240.00")
    assert alert.action_required == MISSING_FRN_ACTION
    assert "'Mystery Bank'" in alert.suggested_override_sql


def test_missing_frn_alert_amount_is_capped_at_the_ceiling():
    alerts = _discovery().detect_missing_frn(
        [account("big", "100001", "200000", "3.0")],
        [product("m", None, "6.0", bank_name="Mystery Bank")],
    )
    assert alerts[0].potential_benefit.amount == Decimal("2550.00")


def test_override_sql_escapes_quotes():
    sql = suggested_override_sql("O'Neil Bank")
    assert "'O''Neil Bank'" in sql
    assert "'[LOOKUP_FRN_HERE]'" in sql

from datetime import datetime, timezone
from decimal import Decimal

from deposit_advise.core.compliance import ProtectionLimitCalculator
from deposit_advise.core.config import InstitutionPreference
from tests.factories import account, optimization_config, pending_deposit

GENERATED_AT = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


def _report(accounts, pending=None, **config_kwargs):
    config = optimization_config(**config_kwargs)
    return ProtectionLimitCalculator(config).generate_report(
        accounts, pending, generated_at=GENERATED_AT
    )


def _fixed_term(account_id, frn, balance, rate="4.5"):
    return account(
        account_id, frn, balance, rate, liquidity_tier="fixed_term", sub_type="Fixed Term"
    )


def test_exposure_above_ceiling_and_tolerance_is_a_breach():
    report = _report([account("acc_1", "100001", "90000", "4.0")])
    exposure = report.exposures[0]
    assert exposure.status == "VIOLATION"
    assert exposure.amount_over_limit.amount == Decimal("5000")
    assert report.overall_status == "BREACH"
    breach = report.breaches[0]
    assert breach.excess_amount.amount == Decimal("4500")
    assert breach.severity == "MEDIUM"
    assert report.summary.total_at_risk.amount == Decimal("4500")


def test_status_bands_follow_utilization():
    report = _report(
        [
            account("tol", "100001", "85300", "4.0"),
            account("warn", "200002", "82000", "4.0"),
            account("near", "300003", "70000", "4.0"),
            account("ok", "400004", "10000", "4.0"),
        ]
    )
    statuses = {item.frn: item.status for item in report.exposures}
    assert statuses == {
        "100001": "TOLERANCE",
        "200002": "WARNING",
        "300003": "NEAR_LIMIT",
        "400004": "COMPLIANT",
    }
    assert report.overall_status == "WARNING"
    assert [item.frn for item in report.warnings] == ["100001", "200002"]
    assert report.warnings[0].message == "Within tolerance threshold"
    assert report.risk_metrics.status_breakdown["NEAR_LIMIT"] == 1


def test_joint_accounts_double_the_ceiling():
    report = _report([account("acc_j", "100001", "150000", "4.0", is_joint_account=True)])
    exposure = report.exposures[0]
    assert exposure.effective_limit.amount == Decimal("170000")
    assert exposure.utilization_percentage == Decimal("88.24")
    assert exposure.status == "NEAR_LIMIT"
    assert report.overall_status == "COMPLIANT"


def test_accounts_sharing_an_frn_are_grouped():
    report = _report(
        [
            account("a", "100001", "50000", "4.0", bank_name="Atlas Bank"),
            account("b", "100001", "40000", "4.1", bank_name="Atlas Direct"),
        ]
    )
    assert len(report.exposures) == 1
    exposure = report.exposures[0]
    assert exposure.total_exposure.amount == Decimal("90000")
    assert exposure.firm_names == ["Atlas Bank", "Atlas Direct"]
    assert exposure.account_ids == ["a", "b"]
    assert exposure.status == "VIOLATION"


def test_personal_override_above_standard_raises_the_ceiling():
    preference = InstitutionPreference(
        frn="100001", bank_name="Atlas Bank", personal_limit=Decimal("200000"), trust_level="medium"
    )
    report = _report([account("a", "100001", "150000", "4.0")], preferences=[preference])
    exposure = report.exposures[0]
    assert exposure.effective_limit.amount == Decimal("200000")
    assert exposure.protection_type == "personal_override"
    assert exposure.status == "COMPLIANT"


def test_high_trust_override_at_government_floor_is_government_protected():
    preference = InstitutionPreference(
        frn="100001",
        bank_name="National Savings",
        personal_limit=Decimal("2000000"),
        trust_level="high",
    )
    report = _report([account("a", "100001", "500000", "4.0")], preferences=[preference])
    assert report.exposures[0].protection_type == "government_protected"
    assert report.exposures[0].status == "COMPLIANT"


def test_override_requiring_easy_access_collapses_when_fixed_money_exceeds_base():
    preference = InstitutionPreference(
        frn="100001",
        bank_name="Atlas Bank",
        personal_limit=Decimal("200000"),
        easy_access_required_above_fscs=True,
    )
    report = _report(
        [
            _fixed_term("fixed", "100001", "100000"),
            account("easy", "100001", "50000", "4.0"),
        ],
        preferences=[preference],
    )
    exposure = report.exposures[0]
    assert exposure.easy_access_balance.amount == Decimal("50000")
    assert exposure.other_balance.amount == Decimal("100000")
    assert exposure.effective_limit.amount == Decimal("135000")
    assert exposure.status == "VIOLATION"


def test_override_requiring_easy_access_is_kept_when_fixed_money_fits_base():
    preference = InstitutionPreference(
        frn="100001",
        bank_name="Atlas Bank",
        personal_limit=Decimal("200000"),
        easy_access_required_above_fscs=True,
    )
    report = _report(
        [_fixed_term("fixed", "100001", "60000"), account("easy", "100001", "90000", "4.0")],
        preferences=[preference],
    )
    assert report.exposures[0].effective_limit.amount == Decimal("200000")


def test_lower_personal_limit_applies_and_disabled_overrides_are_ignored():
    preference = InstitutionPreference(
        frn="100001", bank_name="Atlas Bank", personal_limit=Decimal("50000"), trust_level="low"
    )
    accounts = [account("a", "100001", "60000", "4.0")]
    report = _report(accounts, preferences=[preference])
    assert report.exposures[0].effective_limit.amount == Decimal("50000")
    assert report.exposures[0].status == "VIOLATION"

    disabled = _report(
        accounts, preferences=[preference], personal_fscs_override_enabled="false"
    )
    assert disabled.exposures[0].effective_limit.amount == Decimal("85000")
    assert disabled.exposures[0].protection_type == "standard_fscs"


def test_pending_deposits_count_unless_cancelled_or_excluded():
    accounts = [account("a", "100001", "60000", "4.0")]
    pending = [
        pending_deposit("p1", "100001", "20000"),
        pending_deposit("p2", "100001", "50000", status="CANCELLED"),
    ]
    report = _report(accounts, pending)
    exposure = report.exposures[0]
    assert exposure.total_exposure.amount == Decimal("80000")
    assert exposure.account_ids == ["a", "pending_p1"]

    excluded = _report(accounts, pending, include_pending_deposits_in_fscs="false")
    assert excluded.exposures[0].total_exposure.amount == Decimal("60000")


def test_inactive_and_unidentified_holdings_are_kept_out_of_exposures():
    report = _report(
        [
            account("a", "100001", "30000", "4.0"),
            account("closed", "100001", "90000", "4.0", is_active=False),
            account("mystery", None, "12000", "3.0"),
        ]
    )
    assert report.exposures[0].total_exposure.amount == Decimal("30000")
    assert report.summary.unidentified_accounts == 1
    assert report.summary.unidentified_value.amount == Decimal("12000")
    assert report.summary.total_accounts == 2
    assert report.summary.institution_count == 1


def test_breaches_sort_by_excess_and_severity_scales():
    report = _report(
        [
            account("small", "100001", "90000", "4.0"),
            account("large", "200002", "140000", "4.0"),
            account("mid", "300003", "110000", "4.0"),
        ]
    )
    assert [item.frn for item in report.breaches] == ["200002", "300003", "100001"]
    assert [item.severity for item in report.breaches] == ["CRITICAL", "HIGH", "MEDIUM"]
    assert report.risk_metrics.number_of_breaches == 3


def test_concentration_index_is_scaled_herfindahl():
    report = _report(
        [account("a", "100001", "40000", "4.0"), account("b", "200002", "40000", "4.0")]
    )
    assert report.risk_metrics.concentration_risk == Decimal("5000.00")
    assert report.risk_metrics.average_exposure_per_frn.amount == Decimal("40000.00")


def test_effective_ceilings_include_override_only_institutions():
    preference = InstitutionPreference(
        frn="900009", bank_name="Trusted Bank", personal_limit=Decimal("120000")
    )
    config = optimization_config(preferences=[preference])
    ceilings = ProtectionLimitCalculator(config).effective_ceilings(
        [account("j", "100001", "10000", "4.0", is_joint_account=True)]
    )
    assert ceilings["100001"].amount == Decimal("170000")
    assert ceilings["900009"].amount == Decimal("120000")


def test_empty_portfolio_is_compliant():
    report = _report([])
    assert report.overall_status == "COMPLIANT"
    assert report.exposures == []
    assert report.risk_metrics.concentration_risk == Decimal("0")

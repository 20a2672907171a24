"""
FILE: deposit_advise/core/compliance.py
Protection-limit calculator. Read-only audit of per-institution exposure against
effective protection ceilings (standard, joint, and personal override).
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Literal, Optional, Sequence

from pydantic import BaseModel, Field

from deposit_advise.core.config import (
    GOVERNMENT_PROTECTION_FLOOR,
    InstitutionPreference,
    OptimizationConfig,
)
from deposit_advise.core.models import Account, DepositHolding, PendingDeposit
from deposit_advise.core.money import Money

logger = logging.getLogger(__name__)

REPORT_VERSION = "2.0.0"

ExposureStatus = Literal["VIOLATION", "TOLERANCE", "WARNING", "NEAR_LIMIT", "COMPLIANT"]
ProtectionType = Literal["standard_fscs", "personal_override", "government_protected"]
BreachSeverity = Literal["CRITICAL", "HIGH", "MEDIUM"]

_WARNING_UTILIZATION = Decimal("95")
_NEAR_LIMIT_UTILIZATION = Decimal("80")


class InstitutionExposure(BaseModel):
    frn: str
    firm_names: List[str]
    account_ids: List[str]
    total_exposure: Money
    easy_access_balance: Money
    other_balance: Money
    is_joint: bool
    effective_limit: Money
    utilization_percentage: Decimal
    amount_over_limit: Money
    status: ExposureStatus
    protection_type: ProtectionType
    trust_level: Optional[str] = None
    risk_notes: Optional[str] = None


class ComplianceBreach(BaseModel):
    frn: str
    firm_names: List[str]
    exposure: Money
    effective_limit: Money
    excess_amount: Money
    severity: BreachSeverity
    risk_notes: Optional[str] = None


class ComplianceWarning(BaseModel):
    frn: str
    firm_names: List[str]
    exposure: Money
    effective_limit: Money
    utilization_percentage: Decimal
    message: str


class RiskMetrics(BaseModel):
    fscs_utilization: Decimal = Field(description="Total exposure over summed ceilings, percent.")
    concentration_risk: Decimal = Field(description="Herfindahl index scaled to 0..10000.")
    number_of_breaches: int
    amount_at_risk: Money
    average_exposure_per_frn: Money
    status_breakdown: Dict[str, int]


class ComplianceSummary(BaseModel):
    total_accounts: int
    total_value: Money
    breach_count: int
    warning_count: int
    total_at_risk: Money
    institution_count: int
    unidentified_accounts: int
    unidentified_value: Money


class ComplianceReport(BaseModel):
    report_version: str = REPORT_VERSION
    generated_at: datetime
    overall_status: Literal["BREACH", "WARNING", "COMPLIANT"]
    summary: ComplianceSummary
    exposures: List[InstitutionExposure]
    breaches: List[ComplianceBreach]
    warnings: List[ComplianceWarning]
    risk_metrics: RiskMetrics


class _ExposureGroup:
    def __init__(self, frn: str) -> None:
        self.frn = frn
        self.firm_names: List[str] = []
        self.account_ids: List[str] = []
        self.total = Money.zero()
        self.easy_access = Money.zero()
        self.other = Money.zero()
        self.is_joint = False

    def add(self, holding: DepositHolding, holding_id: str) -> None:
        if holding.bank_name not in self.firm_names:
            self.firm_names.append(holding.bank_name)
        self.account_ids.append(holding_id)
        self.total = self.total + holding.balance
        if holding.is_easy_access:
            self.easy_access = self.easy_access + holding.balance
        else:
            self.other = self.other + holding.balance
        self.is_joint = self.is_joint or holding.is_joint_account


def _exposure_holdings(
    accounts: Sequence[Account],
    pending_deposits: Sequence[PendingDeposit],
    include_pending: bool,
) -> List[tuple[str, DepositHolding]]:
    holdings: List[tuple[str, DepositHolding]] = [
        (account.account_id, account) for account in accounts if account.is_active
    ]
    if include_pending:
        holdings.extend(
            (f"pending_{deposit.deposit_id}", deposit)
            for deposit in pending_deposits
            if deposit.contributes_to_exposure
        )
    return holdings


class ProtectionLimitCalculator:
    def __init__(self, config: OptimizationConfig) -> None:
        self._config = config

    def base_limit(self, is_joint: bool) -> Money:
        compliance = self._config.compliance
        if is_joint:
            return compliance.standard_limit * compliance.joint_multiplier
        return compliance.standard_limit

    def effective_limit(
        self,
        *,
        is_joint: bool,
        easy_access_balance: Money,
        other_balance: Money,
        preference: Optional[InstitutionPreference],
    ) -> Money:
        compliance = self._config.compliance
        base = self.base_limit(is_joint)
        if preference is None or not compliance.personal_override_enabled:
            return base

        personal = preference.personal_limit
        if is_joint:
            personal = personal * compliance.joint_multiplier
        if personal <= base:
            return personal
        if preference.easy_access_required_above_fscs and other_balance > base:
            # Only immediately accessible money may sit above the base ceiling.
            capped = Money.min_of(other_balance, base) + Money.min_of(easy_access_balance, personal)
            return Money.min_of(personal, capped)
        return personal

    def _group(
        self,
        accounts: Sequence[Account],
        pending_deposits: Sequence[PendingDeposit],
        include_pending: bool,
    ) -> tuple[Dict[str, _ExposureGroup], List[DepositHolding]]:
        groups: Dict[str, _ExposureGroup] = {}
        unidentified: List[DepositHolding] = []
        for holding_id, holding in _exposure_holdings(accounts, pending_deposits, include_pending):
            if holding.frn is None:
                unidentified.append(holding)
                continue
            group = groups.get(holding.frn)
            if group is None:
                group = groups[holding.frn] = _ExposureGroup(holding.frn)
            group.add(holding, holding_id)
        return dict(sorted(groups.items())), unidentified

    def _limit_for(self, group: _ExposureGroup) -> Money:
        return self.effective_limit(
            is_joint=group.is_joint,
            easy_access_balance=group.easy_access,
            other_balance=group.other,
            preference=self._config.preference_for(group.frn),
        )

    def effective_ceilings(
        self,
        accounts: Sequence[Account],
        pending_deposits: Sequence[PendingDeposit] = (),
        *,
        include_pending: Optional[bool] = None,
    ) -> Dict[str, Money]:
        """Effective ceiling per held institution, plus override-only institutions."""
        if include_pending is None:
            include_pending = self._config.compliance.include_pending_deposits
        groups, _ = self._group(accounts, pending_deposits, include_pending)
        ceilings = {frn: self._limit_for(group) for frn, group in groups.items()}
        if self._config.compliance.personal_override_enabled:
            for preference in self._config.preferences:
                ceilings.setdefault(
                    preference.frn,
                    self.effective_limit(
                        is_joint=False,
                        easy_access_balance=Money.zero(),
                        other_balance=Money.zero(),
                        preference=preference,
                    ),
                )
        return ceilings

    def _status(self, exposure: Money, limit: Money) -> ExposureStatus:
        tolerance = self._config.compliance.tolerance_threshold
        if exposure > limit + tolerance:
            return "VIOLATION"
        if exposure > limit:
            return "TOLERANCE"
        utilization = _utilization(exposure, limit)
        if utilization >= _WARNING_UTILIZATION:
            return "WARNING"
        if utilization >= _NEAR_LIMIT_UTILIZATION:
            return "NEAR_LIMIT"
        return "COMPLIANT"

    def _protection_type(self, preference: Optional[InstitutionPreference]) -> ProtectionType:
        if preference is None or not self._config.compliance.personal_override_enabled:
            return "standard_fscs"
        if (
            preference.trust_level == "high"
            and preference.personal_limit >= GOVERNMENT_PROTECTION_FLOOR
        ):
            return "government_protected"
        if preference.personal_limit != self._config.compliance.standard_limit:
            return "personal_override"
        return "standard_fscs"

    def generate_report(
        self,
        accounts: Sequence[Account],
        pending_deposits: Optional[Sequence[PendingDeposit]] = None,
        *,
        include_pending: Optional[bool] = None,
        generated_at: Optional[datetime] = None,
    ) -> ComplianceReport:
        compliance = self._config.compliance
        if include_pending is None:
            include_pending = compliance.include_pending_deposits
        groups, unidentified = self._group(accounts, pending_deposits or [], include_pending)

        exposures: List[InstitutionExposure] = []
        breaches: List[ComplianceBreach] = []
        warnings: List[ComplianceWarning] = []
        for frn, group in groups.items():
            preference = self._config.preference_for(frn)
            limit = self._limit_for(group)
            utilization = _utilization(group.total, limit)
            status = self._status(group.total, limit)
            exposures.append(
                InstitutionExposure(
                    frn=frn,
                    firm_names=list(group.firm_names),
                    account_ids=list(group.account_ids),
                    total_exposure=group.total,
                    easy_access_balance=group.easy_access,
                    other_balance=group.other,
                    is_joint=group.is_joint,
                    effective_limit=limit,
                    utilization_percentage=utilization,
                    amount_over_limit=(group.total - limit).clamp_non_negative(),
                    status=status,
                    protection_type=self._protection_type(preference),
                    trust_level=preference.trust_level if preference else None,
                    risk_notes=preference.risk_notes if preference else None,
                )
            )

            if status == "VIOLATION":
                excess = group.total - (limit + compliance.tolerance_threshold)
                breaches.append(
                    ComplianceBreach(
                        frn=frn,
                        firm_names=list(group.firm_names),
                        exposure=group.total,
                        effective_limit=limit,
                        excess_amount=excess,
                        severity=_severity(excess, limit),
                        risk_notes=preference.risk_notes if preference else None,
                    )
                )
            elif status == "TOLERANCE":
                warnings.append(
                    ComplianceWarning(
                        frn=frn,
                        firm_names=list(group.firm_names),
                        exposure=group.total,
                        effective_limit=limit,
                        utilization_percentage=utilization,
                        message="Within tolerance threshold",
                    )
                )
            elif group.total > limit * compliance.warning_threshold:
                warnings.append(
                    ComplianceWarning(
                        frn=frn,
                        firm_names=list(group.firm_names),
                        exposure=group.total,
                        effective_limit=limit,
                        utilization_percentage=utilization,
                        message=f"Exposure at {utilization.quantize(Decimal('0.1'))}% of limit",
                    )
                )

        breaches.sort(key=lambda breach: (-breach.excess_amount.amount, breach.frn))
        if unidentified:
            logger.warning(
                "Compliance report skipped %d holdings without a firm reference number",
                len(unidentified),
            )

        identified_count = sum(len(group.account_ids) for group in groups.values())
        total_accounts = identified_count + len(unidentified)
        total_value = Money.sum_of([group.total for group in groups.values()])
        at_risk = Money.sum_of([breach.excess_amount for breach in breaches])
        overall = "BREACH" if breaches else "WARNING" if warnings else "COMPLIANT"

        return ComplianceReport(
            generated_at=generated_at or datetime.now(timezone.utc),
            overall_status=overall,
            summary=ComplianceSummary(
                total_accounts=total_accounts,
                total_value=total_value,
                breach_count=len(breaches),
                warning_count=len(warnings),
                total_at_risk=at_risk,
                institution_count=len(groups),
                unidentified_accounts=len(unidentified),
                unidentified_value=Money.sum_of([holding.balance for holding in unidentified]),
            ),
            exposures=exposures,
            breaches=breaches,
            warnings=warnings,
            risk_metrics=_risk_metrics(exposures, breaches, at_risk, total_value),
        )


def _utilization(exposure: Money, limit: Money) -> Decimal:
    if not limit.is_positive():
        return Decimal("0")
    return (exposure.amount / limit.amount * 100).quantize(Decimal("0.01"))


def _severity(excess: Money, limit: Money) -> BreachSeverity:
    ratio = excess.amount / limit.amount * 100 if limit.is_positive() else Decimal("100")
    if ratio > 50:
        return "CRITICAL"
    if ratio > 20:
        return "HIGH"
    return "MEDIUM"


def _risk_metrics(
    exposures: List[InstitutionExposure],
    breaches: List[ComplianceBreach],
    at_risk: Money,
    total_value: Money,
) -> RiskMetrics:
    total_limits = Money.sum_of([item.effective_limit for item in exposures])
    utilization = Decimal("0")
    if total_limits.is_positive():
        utilization = (total_value.amount / total_limits.amount * 100).quantize(Decimal("0.01"))

    concentration = Decimal("0")
    if total_value.is_positive():
        concentration = sum(
            ((item.total_exposure.amount / total_value.amount) ** 2 for item in exposures),
            Decimal("0"),
        )
        concentration = (concentration * 10000).quantize(Decimal("0.01"))

    average = Money.zero()
    if exposures:
        average = (total_value / len(exposures)).rounded()

    breakdown: Dict[str, int] = {
        "VIOLATION": 0,
        "TOLERANCE": 0,
        "WARNING": 0,
        "NEAR_LIMIT": 0,
        "COMPLIANT": 0,
    }
    for item in exposures:
        breakdown[item.status] += 1

    return RiskMetrics(
        fscs_utilization=utilization,
        concentration_risk=concentration,
        number_of_breaches=len(breaches),
        amount_at_risk=at_risk,
        average_exposure_per_frn=average,
        status_breakdown=breakdown,
    )

"""
FILE: deposit_advise/core/ledger.py
Run-scoped exposure ledger. Tracks starting exposure and reservations per
institution and answers headroom questions against protection ceilings.
"""

import logging
from typing import Dict, List, Mapping, Optional, Sequence, Union, cast

from pydantic import BaseModel, Field

from deposit_advise.core.models import (
    Account,
    Identified,
    PendingDeposit,
    Unidentified,
)
from deposit_advise.core.money import Money

logger = logging.getLogger(__name__)

InstitutionKey = Union[Identified, Unidentified]


class HeadroomExceededError(Exception):
    pass


class Reservation(BaseModel):
    reservation_id: str
    frn: str
    amount: Money
    source_account_id: Optional[str] = None


class ExposureRecord(BaseModel):
    frn: str
    firm_names: List[str] = Field(default_factory=list)
    starting_exposure: Money = Field(default_factory=Money.zero)
    reserved: Money = Field(default_factory=Money.zero)
    ceiling: Money

    @property
    def total_exposure(self) -> Money:
        return self.starting_exposure + self.reserved

    @property
    def available_headroom(self) -> Money:
        return (self.ceiling - self.total_exposure).clamp_non_negative()

    @property
    def is_at_limit(self) -> bool:
        return self.total_exposure >= self.ceiling

    @property
    def is_over_limit(self) -> bool:
        return self.total_exposure > self.ceiling


class ExposureLedger:
    def __init__(
        self,
        standard_ceiling: Money,
        ceilings: Optional[Mapping[str, Money]] = None,
    ) -> None:
        self._standard_ceiling = standard_ceiling
        self._ceilings: Dict[str, Money] = dict(ceilings or {})
        self._records: Dict[str, ExposureRecord] = {}
        self._reservations: Dict[str, Reservation] = {}
        self._sequence = 0

    @classmethod
    def from_holdings(
        cls,
        *,
        accounts: Sequence[Account],
        pending_deposits: Sequence[PendingDeposit] = (),
        standard_ceiling: Money,
        ceilings: Optional[Mapping[str, Money]] = None,
    ) -> "ExposureLedger":
        ledger = cls(standard_ceiling, ceilings)
        for account in accounts:
            if account.is_active:
                ledger.add_starting_exposure(
                    account.institution, account.balance, account.bank_name
                )
        for deposit in pending_deposits:
            if deposit.contributes_to_exposure:
                ledger.add_starting_exposure(
                    deposit.institution, deposit.balance, deposit.bank_name
                )
        return ledger

    def ceiling_for(self, frn: str) -> Money:
        return self._ceilings.get(frn, self._standard_ceiling)

    def _record(self, frn: str, firm_name: Optional[str] = None) -> ExposureRecord:
        record = self._records.get(frn)
        if record is None:
            record = ExposureRecord(frn=frn, ceiling=self.ceiling_for(frn))
            self._records[frn] = record
        if firm_name and firm_name not in record.firm_names:
            record.firm_names.append(firm_name)
        return record

    def add_starting_exposure(
        self, institution: InstitutionKey, amount: Money, firm_name: Optional[str] = None
    ) -> None:
        if not isinstance(institution, Identified):
            return
        record = self._record(institution.frn, firm_name)
        record.starting_exposure = record.starting_exposure + amount

    def current_exposure(self, institution: InstitutionKey) -> Money:
        if not isinstance(institution, Identified):
            return Money.zero()
        record = self._records.get(institution.frn)
        return record.total_exposure if record else Money.zero()

    def available_headroom(self, institution: InstitutionKey) -> Money:
        if not isinstance(institution, Identified):
            return Money.zero()
        record = self._records.get(institution.frn)
        if record is None:
            return self.ceiling_for(institution.frn)
        return record.available_headroom

    def would_violate(self, institution: InstitutionKey, amount: Money) -> bool:
        if not isinstance(institution, Identified) or not amount.is_positive():
            return True
        return amount > self.available_headroom(institution)

    def max_safe_transfer(self, institution: InstitutionKey, desired: Money) -> Money:
        return Money.min_of(desired, self.available_headroom(institution)).clamp_non_negative()

    def reserve(
        self,
        institution: InstitutionKey,
        amount: Money,
        *,
        firm_name: Optional[str] = None,
        source_account_id: Optional[str] = None,
    ) -> str:
        if self.would_violate(institution, amount):
            raise HeadroomExceededError(
                f"Reserving {amount.amount} would exceed the protection ceiling for "
                f"{getattr(institution, 'frn', 'an unidentified institution')}"
            )
        frn = cast(Identified, institution).frn
        record = self._record(frn, firm_name)
        record.reserved = record.reserved + amount
        self._sequence += 1
        reservation_id = f"res_{self._sequence}"
        self._reservations[reservation_id] = Reservation(
            reservation_id=reservation_id,
            frn=frn,
            amount=amount,
            source_account_id=source_account_id,
        )
        logger.debug(
            "Reserved %s at %s, headroom now %s",
            amount.amount,
            frn,
            record.available_headroom.amount,
        )
        return reservation_id

    def try_reserve(
        self,
        institution: InstitutionKey,
        amount: Money,
        *,
        firm_name: Optional[str] = None,
        source_account_id: Optional[str] = None,
    ) -> Optional[str]:
        if self.would_violate(institution, amount):
            return None
        return self.reserve(
            institution, amount, firm_name=firm_name, source_account_id=source_account_id
        )

    def release(self, reservation_id: str) -> bool:
        reservation = self._reservations.pop(reservation_id, None)
        if reservation is None:
            return False
        record = self._records[reservation.frn]
        record.reserved = record.reserved - reservation.amount
        return True

    def reset_reservations(self) -> None:
        for record in self._records.values():
            record.reserved = Money.zero()
        self._reservations.clear()

    def reservations(self) -> List[Reservation]:
        return list(self._reservations.values())

    def record(self, frn: str) -> Optional[ExposureRecord]:
        record = self._records.get(frn)
        return record.model_copy(deep=True) if record else None

    def summary(self) -> List[ExposureRecord]:
        records = [record.model_copy(deep=True) for record in self._records.values()]
        return sorted(records, key=lambda record: (-record.total_exposure.amount, record.frn))

    def institutions_with_headroom(self) -> List[ExposureRecord]:
        return [record for record in self.summary() if record.available_headroom.is_positive()]

    def over_limit_institutions(self) -> List[ExposureRecord]:
        return [record for record in self.summary() if record.is_at_limit]

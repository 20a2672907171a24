import pytest

from deposit_advise.core.ledger import ExposureLedger, HeadroomExceededError
from deposit_advise.core.models import UNIDENTIFIED, Identified
from deposit_advise.core.money import Money
from tests.factories import account, pending_deposit

ATLAS = Identified(frn="100001")
BEACON = Identified(frn="200002")


def _ledger(**ceilings: str) -> ExposureLedger:
    return ExposureLedger(
        Money.of("85000"), {frn: Money.of(value) for frn, value in ceilings.items()}
    )


def test_headroom_for_unseen_institution_is_its_ceiling():
    ledger = _ledger(**{"200002": "170000"})
    assert ledger.available_headroom(ATLAS) == Money.of("85000")
    assert ledger.available_headroom(BEACON) == Money.of("170000")
    assert ledger.current_exposure(ATLAS) == Money.zero()


def test_starting_exposure_comes_from_active_accounts_and_live_pending():
    ledger = ExposureLedger.from_holdings(
        accounts=[
            account("a", "100001", "50000", "4.0"),
            account("closed", "100001", "30000", "4.0", is_active=False),
            account("unknown", None, "10000", "4.0"),
        ],
        pending_deposits=[
            pending_deposit("p1", "100001", "10000", status="APPROVED"),
            pending_deposit("p2", "100001", "20000", status="CANCELLED"),
        ],
        standard_ceiling=Money.of("85000"),
    )
    assert ledger.current_exposure(ATLAS) == Money.of("60000")
    assert ledger.available_headroom(ATLAS) == Money.of("25000")
    assert [record.frn for record in ledger.summary()] == ["100001"]


def test_reserve_reduces_headroom_and_refuses_overflow():
    ledger = _ledger()
    ledger.add_starting_exposure(ATLAS, Money.of("60000"), "Atlas Bank")
    reservation_id = ledger.reserve(ATLAS, Money.of("25000"), source_account_id="acc_1")
    assert ledger.available_headroom(ATLAS) == Money.zero()
    assert ledger.record("100001").is_at_limit

    with pytest.raises(HeadroomExceededError):
        ledger.reserve(ATLAS, Money.of("1"))
    assert ledger.try_reserve(ATLAS, Money.of("1")) is None
    assert ledger.current_exposure(ATLAS) == Money.of("85000")

    assert ledger.release(reservation_id)
    assert not ledger.release(reservation_id)
    assert ledger.available_headroom(ATLAS) == Money.of("25000")


def test_unidentified_institutions_have_no_headroom():
    ledger = _ledger()
    ledger.add_starting_exposure(UNIDENTIFIED, Money.of("10000"))
    assert ledger.summary() == []
    assert ledger.available_headroom(UNIDENTIFIED) == Money.zero()
    assert ledger.would_violate(UNIDENTIFIED, Money.of("1"))
    with pytest.raises(HeadroomExceededError):
        ledger.reserve(UNIDENTIFIED, Money.of("1"))


def test_non_positive_amounts_are_never_reservable():
    ledger = _ledger()
    assert ledger.would_violate(ATLAS, Money.zero())
    assert ledger.try_reserve(ATLAS, Money.zero()) is None


def test_max_safe_transfer_clamps_to_headroom():
    ledger = _ledger()
    ledger.add_starting_exposure(ATLAS, Money.of("80000"))
    assert ledger.max_safe_transfer(ATLAS, Money.of("20000")) == Money.of("5000")
    assert ledger.max_safe_transfer(BEACON, Money.of("20000")) == Money.of("20000")
    ledger.add_starting_exposure(ATLAS, Money.of("10000"))
    assert ledger.max_safe_transfer(ATLAS, Money.of("20000")) == Money.zero()


def test_reset_and_reporting_views():
    ledger = _ledger()
    ledger.add_starting_exposure(ATLAS, Money.of("90000"), "Atlas Bank")
    ledger.add_starting_exposure(BEACON, Money.of("10000"), "Beacon Savings")
    ledger.reserve(BEACON, Money.of("5000"))
    assert [record.frn for record in ledger.summary()] == ["100001", "200002"]
    assert [record.frn for record in ledger.over_limit_institutions()] == ["100001"]
    assert [record.frn for record in ledger.institutions_with_headroom()] == ["200002"]
    assert len(ledger.reservations()) == 1

    ledger.reset_reservations()
    assert ledger.reservations() == []
    assert ledger.current_exposure(BEACON) == Money.of("10000")


def test_record_returns_a_detached_copy():
    ledger = _ledger()
    ledger.add_starting_exposure(ATLAS, Money.of("1000"))
    snapshot = ledger.record("100001")
    snapshot.starting_exposure = Money.of("99999")
    assert ledger.current_exposure(ATLAS) == Money.of("1000")
    assert ledger.record("999999") is None

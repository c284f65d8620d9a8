from decimal import Decimal

import pytest

from dental_ledger.billing import FeeSchedule, LedgerValidationError, UnknownEntityError, resolve_fee
from dental_ledger.catalog import Procedure, ProcedureCatalog


@pytest.fixture()
def catalog() -> ProcedureCatalog:
    return ProcedureCatalog(
        [
            Procedure(code="D1110", description="Prophylaxis - adult", default_fee=Decimal("125.00")),
            Procedure(code="D9999", description="Unspecified adjunctive procedure"),
        ]
    )


@pytest.fixture()
def schedule() -> FeeSchedule:
    schedule = FeeSchedule()
    schedule.add_entry(plan_identifier="DELTA-PPO", procedure_code="D1110", fee="98")
    return schedule


def test_resolution_precedence(schedule: FeeSchedule, catalog: ProcedureCatalog) -> None:
    assert resolve_fee("D1110", "DELTA-PPO", "80", schedule=schedule, catalog=catalog) == Decimal("80.00")
    assert resolve_fee("D1110", "DELTA-PPO", schedule=schedule, catalog=catalog) == Decimal("98.00")
    assert resolve_fee("D1110", "CIGNA", schedule=schedule, catalog=catalog) == Decimal("125.00")
    assert resolve_fee("D1110", None, schedule=schedule, catalog=catalog) == Decimal("125.00")
    assert resolve_fee("D9999", "DELTA-PPO", schedule=schedule, catalog=catalog) == Decimal("0.00")
    assert resolve_fee("D0000", None, schedule=schedule, catalog=catalog) == Decimal("0.00")
    assert resolve_fee(None, None, schedule=schedule, catalog=catalog) == Decimal("0.00")


def test_zero_override_wins(schedule: FeeSchedule, catalog: ProcedureCatalog) -> None:
    assert resolve_fee("D1110", "DELTA-PPO", 0, schedule=schedule, catalog=catalog) == Decimal("0.00")


def test_codes_are_case_insensitive(schedule: FeeSchedule, catalog: ProcedureCatalog) -> None:
    assert resolve_fee(" d1110 ", "DELTA-PPO", schedule=schedule, catalog=catalog) == Decimal("98.00")


def test_first_matching_entry_wins(schedule: FeeSchedule) -> None:
    schedule.add_entry(plan_identifier="DELTA-PPO", procedure_code="D1110", fee="90")
    assert schedule.fee_for("DELTA-PPO", "D1110") == Decimal("98.00")


def test_entry_validation(schedule: FeeSchedule) -> None:
    with pytest.raises(LedgerValidationError):
        schedule.add_entry(plan_identifier="", procedure_code="D1110", fee="10")
    with pytest.raises(LedgerValidationError):
        schedule.add_entry(plan_identifier="DELTA-PPO", procedure_code=" ", fee="10")
    with pytest.raises(LedgerValidationError):
        schedule.add_entry(plan_identifier="DELTA-PPO", procedure_code="D0120", fee="-1")
    assert len(schedule.list_entries()) == 1


def test_update_and_delete_entries(schedule: FeeSchedule) -> None:
    entry = schedule.list_entries()[0]
    updated = schedule.update_entry(entry.id, fee="101.5")
    assert updated.id == entry.id
    assert updated.fee == Decimal("101.50")
    assert updated.plan_identifier == "DELTA-PPO"

    schedule.delete_entry(entry.id)
    assert schedule.list_entries() == []
    with pytest.raises(UnknownEntityError):
        schedule.delete_entry(entry.id)
    with pytest.raises(UnknownEntityError):
        schedule.update_entry(entry.id, fee="1")


def test_replace_all(schedule: FeeSchedule) -> None:
    other = FeeSchedule()
    entry = other.add_entry(plan_identifier="AETNA", procedure_code="d0150", fee="140")
    schedule.replace_all(other.list_entries())
    entries = schedule.list_entries()
    assert [(e.id, e.plan_identifier, e.procedure_code) for e in entries] == [(entry.id, "AETNA", "D0150")]

import threading
from datetime import date, timedelta
from decimal import Decimal

import pytest

from dental_ledger.audit import InMemoryAuditLog
from dental_ledger.billing import (
    BillingEngine,
    ChargeLine,
    LedgerConsistencyError,
    LedgerValidationError,
    UnknownEntityError,
    check_consistency,
    recompute_balance,
)


@pytest.fixture()
def engine() -> BillingEngine:
    return BillingEngine(audit_log=InMemoryAuditLog())


@pytest.fixture()
def seeded() -> BillingEngine:
    return BillingEngine(seed_demo_data=True)


def _open_with_charge(engine: BillingEngine, amount: str = "225.00") -> str:
    engine.open_account("p-1")
    engine.add_lines(
        "p-1",
        service_date=date(2024, 3, 1),
        lines=[ChargeLine(procedure_code="D2392", description="Resin", amount=amount)],
    )
    return "p-1"


def test_split_payment_and_write_off_scenario(engine: BillingEngine) -> None:
    account_id = _open_with_charge(engine)
    assert engine.get_account(account_id).balance_due == Decimal("225.00")

    engine.record_payment(account_id, mode="Split", out_of_pocket="85", with_insurance="140")
    assert engine.get_account(account_id).balance_due == Decimal("0.00")

    engine.apply_adjustment(account_id, type="Write-off", amount="10", reason="Courtesy")
    assert engine.get_account(account_id).balance_due == Decimal("0.00")


def test_balance_conserves_ledger_history(engine: BillingEngine) -> None:
    account_id = _open_with_charge(engine, "300")
    engine.record_payment(account_id, mode="OutOfPocket", amount="40.555")
    engine.record_payment(account_id, mode="Insurance", amount="100")
    engine.apply_adjustment(account_id, type="Adjustment", amount="9.99", reason="Mischarge on D2392")
    account = engine.get_account(account_id)
    assert account.payments[0].amount == Decimal("40.56")
    expected = account.total_charges - account.total_payments - account.total_adjustments
    assert account.balance_due == expected == Decimal("149.45")
    assert recompute_balance(account) == account.balance_due


def test_balance_never_negative(engine: BillingEngine) -> None:
    account_id = _open_with_charge(engine, "50")
    engine.record_payment(account_id, mode="OutOfPocket", amount="80")
    assert engine.get_account(account_id).balance_due == Decimal("0.00")


def test_payment_modes_record_portions(engine: BillingEngine) -> None:
    account_id = _open_with_charge(engine)
    patient = engine.record_payment(account_id, mode="OutOfPocket", amount="20")
    insurer = engine.record_payment(account_id, mode="Insurance", with_insurance="30")
    split = engine.record_payment(account_id, mode="Split", out_of_pocket="5")
    assert (patient.amount_out_of_pocket, patient.amount_with_insurance) == (Decimal("20.00"), None)
    assert (insurer.amount_out_of_pocket, insurer.amount_with_insurance) == (None, Decimal("30.00"))
    assert (split.amount_out_of_pocket, split.amount_with_insurance) == (Decimal("5.00"), Decimal("0.00"))
    assert split.amount == Decimal("5.00")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"mode": "OutOfPocket", "amount": "0"},
        {"mode": "OutOfPocket", "amount": "-5"},
        {"mode": "OutOfPocket"},
        {"mode": "Insurance", "amount": "-1"},
        {"mode": "Split", "out_of_pocket": "0", "with_insurance": "0"},
        {"mode": "Split", "out_of_pocket": "-1", "with_insurance": "10"},
        {"mode": "Cheque", "amount": "10"},
        {"mode": "OutOfPocket", "amount": "ten"},
    ],
)
def test_invalid_payments_change_nothing(engine: BillingEngine, kwargs) -> None:
    account_id = _open_with_charge(engine)
    audit_size = len(engine.audit_log)
    with pytest.raises(LedgerValidationError):
        engine.record_payment(account_id, **kwargs)
    account = engine.get_account(account_id)
    assert account.payments == []
    assert account.balance_due == Decimal("225.00")
    assert len(engine.audit_log) == audit_size


def test_zero_insurance_payment_is_allowed(engine: BillingEngine) -> None:
    account_id = _open_with_charge(engine)
    payment = engine.record_payment(account_id, mode="Insurance", amount="0")
    assert payment.amount == Decimal("0.00")
    assert engine.get_account(account_id).balance_due == Decimal("225.00")


def test_adjustment_validation(engine: BillingEngine) -> None:
    account_id = _open_with_charge(engine)
    with pytest.raises(LedgerValidationError):
        engine.apply_adjustment(account_id, type="Write-off", amount="10", reason="   ")
    with pytest.raises(LedgerValidationError):
        engine.apply_adjustment(account_id, type="Write-off", amount="0", reason="Nothing")
    with pytest.raises(LedgerValidationError):
        engine.apply_adjustment(account_id, type="Refund", amount="5", reason="Unknown type")
    assert engine.get_account(account_id).adjustments == []


def test_add_lines_resolves_fees(engine: BillingEngine) -> None:
    engine.fee_schedule.add_entry(plan_identifier="DELTA-PPO", procedure_code="D1110", fee="98")
    engine.open_account("p-2", plan_identifier="DELTA-PPO")
    lines = engine.add_lines(
        "p-2",
        service_date=date(2024, 5, 2),
        lines=[
            ChargeLine(procedure_code="d1110"),
            {"procedure_code": "D0150"},
            ChargeLine(procedure_code="D0150", amount="0"),
            ChargeLine(procedure_code="XYZ1", description="Lab fee"),
        ],
    )
    assert [line.amount for line in lines] == [
        Decimal("98.00"),
        Decimal("150.00"),
        Decimal("0.00"),
        Decimal("0.00"),
    ]
    assert lines[0].procedure_code == "D1110"
    assert lines[0].description == "Prophylaxis - adult"
    assert all(line.status == "Pending" for line in lines)


def test_add_lines_is_all_or_nothing(engine: BillingEngine) -> None:
    engine.open_account("p-3")
    with pytest.raises(LedgerValidationError):
        engine.add_lines(
            "p-3",
            service_date=date(2024, 5, 2),
            lines=[ChargeLine(description="Exam", amount="50"), ChargeLine(description="Bad", amount="-1")],
        )
    with pytest.raises(LedgerValidationError):
        engine.add_lines("p-3", service_date=date(2024, 5, 2), lines=[])
    assert engine.get_account("p-3").invoice_lines == []


def test_lines_grouped_by_service_date(engine: BillingEngine) -> None:
    engine.open_account("p-4")
    engine.add_lines("p-4", service_date="2024-02-10", lines=[ChargeLine(description="B", amount="1")])
    engine.add_lines("p-4", service_date=date(2024, 1, 5), lines=[ChargeLine(description="A", amount="2")])
    engine.add_lines("p-4", service_date=date(2024, 2, 10), lines=[ChargeLine(description="C", amount="3")])
    grouped = engine.lines_by_service_date("p-4")
    assert list(grouped) == [date(2024, 1, 5), date(2024, 2, 10)]
    assert [line.description for line in grouped[date(2024, 2, 10)]] == ["B", "C"]


def test_set_line_status(engine: BillingEngine) -> None:
    account_id = _open_with_charge(engine)
    line_id = engine.get_account(account_id).invoice_lines[0].id
    assert engine.set_line_status(account_id, line_id, "Paid").status == "Paid"
    with pytest.raises(LedgerValidationError):
        engine.set_line_status(account_id, line_id, "Settled")
    with pytest.raises(UnknownEntityError):
        engine.set_line_status(account_id, "missing", "Paid")


def test_unknown_account_is_rejected(engine: BillingEngine) -> None:
    with pytest.raises(UnknownEntityError) as excinfo:
        engine.record_payment("nobody", mode="OutOfPocket", amount="5")
    assert str(excinfo.value) == "Unknown account 'nobody'"
    with pytest.raises(UnknownEntityError):
        engine.close_account("nobody")


def test_open_account_rejects_duplicates(engine: BillingEngine) -> None:
    engine.open_account("p-5", plan_identifier=" CIGNA ")
    assert engine.get_account("p-5").plan_identifier == "CIGNA"
    with pytest.raises(LedgerValidationError):
        engine.open_account("p-5")
    with pytest.raises(LedgerValidationError):
        engine.open_account("  ")


def test_payment_method_never_stores_card_number(engine: BillingEngine) -> None:
    engine.open_account("p-6")
    method = engine.add_payment_method(
        "p-6",
        type="Card",
        card_number="4111 1111 1111 1111",
        name_on_card="Ava Chen",
        expiry_month=4,
        expiry_year=2029,
    )
    assert method.card_brand == "Visa"
    assert method.last_four == "1111"
    assert "4111 1111" not in repr(method)
    payment = engine.record_payment("p-6", mode="OutOfPocket", amount="10", method_id=method.id)
    assert payment.payment_method_id == method.id

    with pytest.raises(UnknownEntityError):
        engine.record_payment("p-6", mode="OutOfPocket", amount="10", method_id="missing")
    with pytest.raises(LedgerValidationError):
        engine.add_payment_method("p-6", type="Card", expiry_month=13)
    with pytest.raises(LedgerValidationError):
        engine.add_payment_method("p-6", type="Card", nickname="card 4111111111111111")

    engine.remove_payment_method("p-6", method.id)
    assert engine.get_account("p-6").payment_methods == []
    with pytest.raises(UnknownEntityError):
        engine.remove_payment_method("p-6", method.id)


def test_notes_are_redacted(engine: BillingEngine) -> None:
    account_id = _open_with_charge(engine)
    payment = engine.record_payment(
        account_id, mode="OutOfPocket", amount="10", note="Paid with 4111 1111 1111 1111"
    )
    assert "4111" not in payment.note
    assert "[REDACTED]" in payment.note


def test_deductible(engine: BillingEngine) -> None:
    engine.open_account("p-7")
    account = engine.set_deductible("p-7", annual="100", remaining="40")
    assert (account.deductible_annual, account.deductible_remaining) == (Decimal("100.00"), Decimal("40.00"))
    with pytest.raises(LedgerValidationError):
        engine.set_deductible("p-7", annual="-1", remaining="0")


def test_every_mutation_emits_one_audit_record(engine: BillingEngine) -> None:
    engine.open_account("p-8")
    engine.add_lines("p-8", service_date=date.today(), lines=[ChargeLine(description="Exam", amount="75")])
    engine.record_payment("p-8", mode="OutOfPocket", amount="25", actor_id="front-desk")
    claim = engine.submit_claim("p-8", amount="50", procedure_codes=["D0120"])
    engine.record_claim_payment("p-8", claim.id, paid_amount="50")
    engine.apply_adjustment("p-8", type="Adjustment", amount="1", reason="Rounding")
    actions = [entry.action for entry in engine.audit_log.entries(account_id="p-8")]
    assert actions == [
        "adjustment.apply",
        "claim.payment",
        "claim.submit",
        "payment.record",
        "invoice.add_lines",
        "account.open",
    ]
    payment_entry = engine.audit_log.entries(action="payment.record")[0]
    assert payment_entry.actor_id == "front-desk"
    assert engine.audit_log.entries(action="account.open")[0].actor_id == "System"


def test_snapshot_is_detached(engine: BillingEngine) -> None:
    account_id = _open_with_charge(engine)
    copy = engine.snapshot()[0]
    copy.invoice_lines.clear()
    assert len(engine.get_account(account_id).invoice_lines) == 1


def test_check_consistency(engine: BillingEngine) -> None:
    account_id = _open_with_charge(engine)
    account = engine.get_account(account_id)
    assert check_consistency(account, "225") == Decimal("225.00")
    with pytest.raises(LedgerConsistencyError):
        check_consistency(account, "200")


def test_demo_seed_balances(seeded: BillingEngine) -> None:
    balances = {account.account_id: account.balance_due for account in seeded.list_accounts()}
    assert balances == {
        "demo-ava-chen": Decimal("0.00"),
        "demo-marcus-reed": Decimal("225.00"),
        "demo-priya-shah": Decimal("450.00"),
        "demo-leo-martin": Decimal("175.00"),
    }
    marcus = seeded.get_account("demo-marcus-reed")
    assert marcus.payment_methods[0].card_brand == "Visa"


def test_dashboard_metrics(seeded: BillingEngine) -> None:
    metrics = seeded.dashboard_metrics()
    assert metrics["total_outstanding"] == Decimal("850.00")
    assert metrics["accounts_with_balance"] == 3
    assert metrics["open_claims"] == 1
    assert metrics["expected_insurance"] == Decimal("450.00")
    assert metrics["total_collected"] == Decimal("1093.00")
    assert metrics["total_written_off"] == Decimal("20.00")


def test_close_account(engine: BillingEngine) -> None:
    engine.open_account("p-9")
    engine.close_account("p-9")
    assert engine.list_accounts() == []
    with pytest.raises(UnknownEntityError):
        engine.get_account("p-9")


def test_future_dated_payment(engine: BillingEngine) -> None:
    account_id = _open_with_charge(engine)
    tomorrow = date.today() + timedelta(days=1)
    payment = engine.record_payment(account_id, mode="OutOfPocket", amount="5", payment_date=tomorrow)
    assert payment.date == tomorrow


def test_concurrent_payments_on_one_account(engine: BillingEngine) -> None:
    account_id = _open_with_charge(engine, "100")
    start = threading.Barrier(20)

    def pay() -> None:
        start.wait()
        engine.record_payment(account_id, mode="OutOfPocket", amount="1")

    workers = [threading.Thread(target=pay) for _ in range(20)]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join()

    account = engine.get_account(account_id)
    assert len(account.payments) == 20
    assert account.balance_due == recompute_balance(account) == Decimal("80.00")
    assert len(engine.audit_log.entries(account_id=account_id, action="payment.record")) == 20


def test_overpayment_credit_offsets_later_charges(engine: BillingEngine) -> None:
    account_id = _open_with_charge(engine, "100")
    engine.record_payment(account_id, mode="OutOfPocket", amount="150")
    assert engine.get_account(account_id).balance_due == Decimal("0.00")
    engine.add_lines(account_id, service_date=date(2024, 3, 2), lines=[ChargeLine(description="Exam", amount="50")])
    assert engine.get_account(account_id).balance_due == Decimal("0.00")
    engine.add_lines(account_id, service_date=date(2024, 3, 3), lines=[ChargeLine(description="X-ray", amount="30")])
    assert engine.get_account(account_id).balance_due == Decimal("30.00")

from datetime import datetime

import pytest

from coachdesk.errors import (
    ConflictError,
    InsufficientCredit,
    InternalInconsistency,
    RecordNotFound,
    ValidationError,
)
from coachdesk.models.domain.reconciliation_domain import AttendanceStatus, credit_delta
from coachdesk.services.reconciliation import confirm_attendance
from tests.fakes import TAIPEI

ATTENDED = AttendanceStatus.ATTENDED
ABSENT = AttendanceStatus.ABSENT
UNSET = AttendanceStatus.UNSET

CLASS_TIME = datetime(2025, 3, 12, 18, 30, tzinfo=TAIPEI)


@pytest.mark.parametrize(
    "previous,new,expected",
    [
        (UNSET, ATTENDED, -1),
        (ABSENT, ATTENDED, -1),
        (UNSET, ABSENT, 0),
        (ATTENDED, ABSENT, 0),
        (ATTENDED, ATTENDED, 0),
        (ABSENT, ABSENT, 0),
    ],
)
def test_credit_delta(previous, new, expected):
    assert credit_delta(previous, new) == expected


def test_skip_decrement_forces_zero_delta():
    assert credit_delta(UNSET, ATTENDED, skip_decrement=True) == 0


@pytest.fixture
def alice_record(store):
    alice = store.add_student("Alice", remaining=3)
    return store.add_record(alice, "e1", CLASS_TIME)


@pytest.mark.asyncio
async def test_unset_to_attended_charges_one_class(store, alice_record):
    change = await confirm_attendance(store, alice_record.id, ATTENDED)

    assert change.remaining_classes == 2
    assert change.balance_delta == -1
    assert store.balance(alice_record.student_id) == 2
    assert store.attendance(alice_record.id) is ATTENDED
    assert change.message == "Successfully set Alice as attended, 2 classes remaining"
    assert store.ledger[-1]["delta"] == -1
    assert store.ledger[-1]["class_record_id"] == alice_record.id


@pytest.mark.asyncio
async def test_confirming_twice_is_idempotent(store, alice_record):
    await confirm_attendance(store, alice_record.id, ATTENDED)
    second = await confirm_attendance(store, alice_record.id, ATTENDED)

    assert second.balance_delta == 0
    assert second.remaining_classes == 2
    assert store.balance(alice_record.student_id) == 2
    assert len(store.ledger) == 1


@pytest.mark.asyncio
async def test_unset_to_absent_keeps_balance(store, alice_record):
    change = await confirm_attendance(store, alice_record.id, ABSENT)

    assert change.balance_delta == 0
    assert store.balance(alice_record.student_id) == 3
    assert store.attendance(alice_record.id) is ABSENT
    assert "adjust_balance" not in store.calls


@pytest.mark.asyncio
async def test_absent_then_attended_then_absent(store):
    bob = store.add_student("Bob", remaining=2)
    record = store.add_record(bob, "e1", CLASS_TIME, attendance=ABSENT)

    to_attended = await confirm_attendance(store, record.id, ATTENDED)
    back_to_absent = await confirm_attendance(store, record.id, ABSENT)

    assert to_attended.remaining_classes == 1
    # No refund when an attended class is corrected to absent
    assert back_to_absent.remaining_classes == 1
    assert store.balance(bob.id) == 1


@pytest.mark.asyncio
async def test_no_credit_rejects_without_mutation(store):
    carol = store.add_student("Carol", remaining=0)
    record = store.add_record(carol, "e1", CLASS_TIME)

    with pytest.raises(InsufficientCredit):
        await confirm_attendance(store, record.id, ATTENDED)

    assert store.attendance(record.id) is UNSET
    assert store.balance(carol.id) == 0
    assert "set_attendance" not in store.calls


@pytest.mark.asyncio
async def test_no_credit_still_allows_absent(store):
    carol = store.add_student("Carol", remaining=0)
    record = store.add_record(carol, "e1", CLASS_TIME)

    change = await confirm_attendance(store, record.id, ABSENT)

    assert change.new_status is ABSENT


@pytest.mark.asyncio
async def test_skip_decrement_marks_attended_without_charge(store, alice_record):
    change = await confirm_attendance(store, alice_record.id, ATTENDED, skip_decrement=True)

    assert change.balance_delta == 0
    assert store.attendance(alice_record.id) is ATTENDED
    assert store.balance(alice_record.student_id) == 3


@pytest.mark.asyncio
async def test_missing_record(store):
    with pytest.raises(RecordNotFound):
        await confirm_attendance(store, 999, ATTENDED)


@pytest.mark.asyncio
async def test_unset_is_not_a_valid_target(store, alice_record):
    with pytest.raises(ValidationError):
        await confirm_attendance(store, alice_record.id, UNSET)


@pytest.mark.asyncio
async def test_balance_failure_restores_attendance(store, alice_record, gateway_error):
    store.fail("adjust_balance", gateway_error)

    with pytest.raises(type(gateway_error)):
        await confirm_attendance(store, alice_record.id, ATTENDED)

    assert store.attendance(alice_record.id) is UNSET
    assert store.balance(alice_record.student_id) == 3


@pytest.mark.asyncio
async def test_failed_restore_raises_internal_inconsistency(store, alice_record, gateway_error):
    store.fail("adjust_balance", gateway_error)
    # First set_attendance applies the change, the second (the undo) fails
    store.fail("set_attendance", gateway_error, after=1)

    with pytest.raises(InternalInconsistency) as exc:
        await confirm_attendance(store, alice_record.id, ATTENDED)

    assert exc.value.details["record_id"] == alice_record.id
    assert exc.value.details["previous_status"] == "unset"
    assert store.attendance(alice_record.id) is ATTENDED


@pytest.mark.asyncio
async def test_credit_spent_concurrently_is_rolled_back(store, alice_record):
    # Balance check passes on the stale read, then the guarded decrement finds nothing
    original = store.adjust_balance

    async def drained(student_id, delta, **kwargs):
        store.students[student_id].remaining_classes = 0
        return await original(student_id, delta, **kwargs)

    store.adjust_balance = drained

    with pytest.raises(InsufficientCredit):
        await confirm_attendance(store, alice_record.id, ATTENDED)

    assert store.attendance(alice_record.id) is UNSET


@pytest.mark.asyncio
async def test_concurrent_identical_write_is_not_a_conflict(store, alice_record):
    original = store.set_attendance

    async def racing(record_id, new_status, *, expected):
        # Another request sets the same value first
        store.records[record_id].attendance = new_status
        return await original(record_id, new_status, expected=expected)

    store.set_attendance = racing

    change = await confirm_attendance(store, alice_record.id, ABSENT)

    assert change.new_status is ABSENT
    assert change.balance_delta == 0


@pytest.mark.asyncio
async def test_concurrent_different_write_is_a_conflict(store, alice_record):
    original = store.set_attendance

    async def racing(record_id, new_status, *, expected):
        store.records[record_id].attendance = ATTENDED
        return await original(record_id, new_status, expected=expected)

    store.set_attendance = racing

    with pytest.raises(ConflictError):
        await confirm_attendance(store, alice_record.id, ABSENT)


@pytest.mark.asyncio
async def test_transactional_store_uses_single_call(store, alice_record):
    calls = []

    async def apply_attendance_change(record, new_status, delta):
        calls.append((record.id, new_status, delta))
        return 2

    store.supports_transactions = True
    store.apply_attendance_change = apply_attendance_change

    change = await confirm_attendance(store, alice_record.id, ATTENDED)

    assert calls == [(alice_record.id, ATTENDED, -1)]
    assert change.remaining_classes == 2
    assert "set_attendance" not in store.calls

import pytest
from sqlalchemy import text

from backend.core.errors import ConflictError, InvalidRequestError, NotFoundError
from backend.scheduling.slots import SlotMaintenance
from backend.scheduling.store import availability_store

DAY = '2024-05-01'


def slot(start: str, end: str) -> dict:
    return {'start': start, 'end': end}


@pytest.fixture
def slots(db) -> SlotMaintenance:
    return SlotMaintenance(db)


def test_insert_work_time_creates_document_on_first_call(slots) -> None:
    availability, created = slots.insert_work_time('T1', DAY, [slot('09:00', '12:00')])

    assert created is True
    assert availability['therapistId'] == 'T1'
    assert availability['availability'] == [{'date': DAY, 'time_slots': [slot('09:00', '12:00')]}]
    assert availability['version'] == 1


def test_insert_work_time_appends_non_overlapping_slots(slots) -> None:
    slots.insert_work_time('T1', DAY, [slot('09:00', '12:00')])

    availability, created = slots.insert_work_time('T1', DAY, [slot('12:00', '13:00'), slot('14:00', '16:00')])

    assert created is False
    assert availability['availability'][0]['time_slots'] == [
        slot('09:00', '12:00'),
        slot('12:00', '13:00'),
        slot('14:00', '16:00'),
    ]
    assert availability['version'] == 2


def test_insert_work_time_adds_new_date_entries(slots) -> None:
    slots.insert_work_time('T1', DAY, [slot('09:00', '12:00')])

    availability, _ = slots.insert_work_time('T1', '2024-05-02', [slot('10:00', '11:00')])

    assert [entry['date'] for entry in availability['availability']] == [DAY, '2024-05-02']


def test_insert_work_time_rejects_identical_slot_as_overlap(slots) -> None:
    slots.insert_work_time('T1', DAY, [slot('09:00', '12:00')])

    with pytest.raises(ConflictError) as exception_info:
        slots.insert_work_time('T1', DAY, [slot('09:00', '12:00')])

    assert exception_info.value.message == 'Conflicting time slots found'
    assert exception_info.value.payload['overlappingSlots'] == [
        {'existing': slot('09:00', '12:00'), 'requested': slot('09:00', '12:00')},
    ]


def test_insert_work_time_rejects_whole_batch_when_one_slot_overlaps(slots) -> None:
    slots.insert_work_time('T1', DAY, [slot('09:00', '12:00')])

    with pytest.raises(ConflictError):
        slots.insert_work_time('T1', DAY, [slot('13:00', '14:00'), slot('11:30', '12:30')])

    assert slots.get_availability('T1')['availability'][0]['time_slots'] == [slot('09:00', '12:00')]


def test_insert_work_time_rejects_empty_batch(slots) -> None:
    with pytest.raises(InvalidRequestError):
        slots.insert_work_time('T1', DAY, [])


def test_delete_work_time_requires_every_slot_to_exist(slots) -> None:
    slots.insert_work_time('T1', DAY, [slot('09:00', '12:00'), slot('13:00', '15:00')])

    with pytest.raises(NotFoundError) as exception_info:
        slots.delete_work_time('T1', DAY, [slot('09:00', '12:00'), slot('15:00', '16:00')])

    assert exception_info.value.payload == {'nonExistingSlots': [slot('15:00', '16:00')]}
    assert len(slots.get_availability('T1')['availability'][0]['time_slots']) == 2


def test_delete_work_time_removes_matched_slots_and_collapses_empty_date(slots) -> None:
    slots.insert_work_time('T1', DAY, [slot('09:00', '12:00'), slot('13:00', '15:00')])

    availability = slots.delete_work_time('T1', DAY, [slot('09:00', '12:00')])
    assert availability['availability'] == [{'date': DAY, 'time_slots': [slot('13:00', '15:00')]}]

    availability = slots.delete_work_time('T1', DAY, [slot('13:00', '15:00')])
    assert availability['availability'] == []


def test_delete_work_time_without_slots_removes_whole_date(slots) -> None:
    slots.insert_work_time('T1', DAY, [slot('09:00', '12:00')])
    slots.insert_work_time('T1', '2024-05-02', [slot('09:00', '12:00')])

    availability = slots.delete_work_time('T1', DAY, None)

    assert [entry['date'] for entry in availability['availability']] == ['2024-05-02']


def test_delete_work_time_reports_missing_store_and_date(slots) -> None:
    with pytest.raises(NotFoundError) as exception_info:
        slots.delete_work_time('T9', DAY)
    assert exception_info.value.message == 'No availability found for therapist with ID T9'

    slots.insert_work_time('T9', DAY, [slot('09:00', '12:00')])
    with pytest.raises(NotFoundError) as exception_info:
        slots.delete_work_time('T9', '2024-06-01')
    assert exception_info.value.message == 'No availability found for date 2024-06-01'


def test_insert_unavailability_requires_declared_hours(slots) -> None:
    with pytest.raises(NotFoundError):
        slots.insert_unavailability('T1', DAY, [slot('09:00', '09:30')])

    slots.insert_work_time('T1', DAY, [slot('09:00', '12:00')])

    with pytest.raises(InvalidRequestError) as exception_info:
        slots.insert_unavailability('T1', '2024-05-02', [slot('09:00', '09:30')])
    assert exception_info.value.message == 'Therapist is not available on date 2024-05-02'


def test_insert_unavailability_rejects_batch_with_any_slot_outside_hours(slots) -> None:
    slots.insert_work_time('T1', DAY, [slot('09:00', '12:00')])

    with pytest.raises(InvalidRequestError) as exception_info:
        slots.insert_unavailability('T1', DAY, [slot('09:00', '09:30'), slot('11:30', '12:30')])

    assert exception_info.value.payload == {'invalidSlots': [slot('11:30', '12:30')]}
    with pytest.raises(NotFoundError):
        slots.get_unavailability('T1')


def test_insert_unavailability_creates_then_appends(slots) -> None:
    slots.insert_work_time('T1', DAY, [slot('09:00', '12:00')])

    unavailability, created = slots.insert_unavailability('T1', DAY, [slot('09:00', '09:30')])
    assert created is True

    unavailability, created = slots.insert_unavailability('T1', DAY, [slot('09:30', '10:00')])
    assert created is False
    assert unavailability['unavailability'] == [
        {'date': DAY, 'time_slots': [slot('09:00', '09:30'), slot('09:30', '10:00')]},
    ]


def test_insert_unavailability_rejects_exact_duplicates(slots) -> None:
    slots.insert_work_time('T1', DAY, [slot('09:00', '12:00')])
    slots.insert_unavailability('T1', DAY, [slot('09:00', '09:30')])

    with pytest.raises(ConflictError) as exception_info:
        slots.insert_unavailability('T1', DAY, [slot('09:00', '09:30')])

    assert exception_info.value.message == 'Duplicate time slots found for the same date.'


def test_insert_unavailability_rejects_partial_overlaps(slots) -> None:
    slots.insert_work_time('T1', DAY, [slot('09:00', '12:00')])
    slots.insert_unavailability('T1', DAY, [slot('09:00', '10:00')])

    with pytest.raises(ConflictError) as exception_info:
        slots.insert_unavailability('T1', DAY, [slot('09:30', '10:30')])

    assert exception_info.value.message == 'Time slots overlap existing unavailability.'


def test_insert_unavailability_rejects_overlaps_inside_batch(slots) -> None:
    slots.insert_work_time('T1', DAY, [slot('09:00', '12:00')])

    with pytest.raises(ConflictError):
        slots.insert_unavailability('T1', DAY, [slot('09:00', '10:00'), slot('09:30', '10:30')])


def test_delete_time_slot_removes_slots_then_date_entry(slots) -> None:
    slots.insert_work_time('T1', DAY, [slot('09:00', '12:00')])
    slots.insert_unavailability('T1', DAY, [slot('09:00', '09:30'), slot('10:00', '10:30')])

    result = slots.delete_time_slot('T1', DAY, [slot('09:00', '09:30')])
    assert result['unavailability']['unavailability'] == [{'date': DAY, 'time_slots': [slot('10:00', '10:30')]}]

    result = slots.delete_time_slot('T1', DAY, [slot('10:00', '10:30')])
    assert result['unavailability']['unavailability'] == []


def test_delete_time_slot_ignores_slots_that_are_not_stored(slots) -> None:
    slots.insert_work_time('T1', DAY, [slot('09:00', '12:00')])
    slots.insert_unavailability('T1', DAY, [slot('09:00', '09:30'), slot('10:00', '10:30')])

    result = slots.delete_time_slot('T1', DAY, [slot('09:00', '09:30'), slot('11:00', '11:30')])

    assert result['deletedSlots'] == [slot('09:00', '09:30')]
    assert result['ignoredSlots'] == [slot('11:00', '11:30')]
    assert result['unavailability']['unavailability'][0]['time_slots'] == [slot('10:00', '10:30')]


def test_delete_time_slot_fails_when_no_requested_slot_exists(slots) -> None:
    slots.insert_work_time('T1', DAY, [slot('09:00', '12:00')])
    slots.insert_unavailability('T1', DAY, [slot('09:00', '09:30')])

    with pytest.raises(NotFoundError) as exception_info:
        slots.delete_time_slot('T1', DAY, [slot('11:00', '11:30')])

    assert exception_info.value.message == 'The specified time slots do not exist in the database.'


def test_stale_version_is_rejected_as_concurrent_modification(db, slots) -> None:
    slots.insert_work_time('T1', DAY, [slot('09:00', '12:00')])
    store = availability_store(db)
    record = store.get('T1')

    db.execute(text("UPDATE therapist_availability SET version = version + 1 WHERE therapist_id = 'T1'"))

    with pytest.raises(ConflictError) as exception_info:
        store.save(record, [{'date': DAY, 'time_slots': []}])

    assert 'modified concurrently' in exception_info.value.message

from datetime import datetime

from classbook.firestore_models import (
    Course, Entry, Metadata, SLOTS_PER_DAY, WEEKDAYS, empty_timetable, normalize_timetable,
)


def test_empty_timetable_shape():
    timetable = empty_timetable()
    assert list(timetable) == list(WEEKDAYS)
    assert all(len(slots) == SLOTS_PER_DAY for slots in timetable.values())


def test_normalize_timetable_replaces_non_mapping():
    assert normalize_timetable(None) == empty_timetable()
    assert normalize_timetable(['mon']) == empty_timetable()


def test_normalize_timetable_does_not_mutate_input():
    original = {'mon': ['D']}
    normalize_timetable(original)
    assert original == {'mon': ['D']}


def test_course_to_dict_omits_missing_timetable():
    assert Course(id='A', name='A').to_dict() == {'id': 'A', 'name': 'A', 'students': []}
    assert 'timetable' in Course(id='A', timetable=empty_timetable()).to_dict()


def test_metadata_from_dict_tolerates_missing_fields():
    meta = Metadata.from_dict({'courses': [{'id': 'RSA261', 'name': 'RSA 261'}]})

    assert meta.subjects == []
    assert meta.teachers == []
    assert meta.find_course('RSA261').students == []
    assert meta.find_course('X') is None
    assert Metadata.from_dict(None).is_empty()


def test_entry_from_dict_coerces_values():
    entry = Entry.from_dict({
        'course': 'RSA261',
        'date': '2024-05-01',
        'hour': 1,
        'absences': None,
        'created_at': '2024-05-01T08:00:00Z',
    }, 'RSA261__2024-05-01__1')

    assert entry.id == 'RSA261__2024-05-01__1'
    assert entry.hour == '1'
    assert entry.absences == []
    assert entry.locked is False
    assert entry.created_at == datetime.fromisoformat('2024-05-01T08:00:00+00:00')
    assert entry.natural_key == ('RSA261', '2024-05-01', '1')


def test_entry_from_dict_stringifies_key_fields():
    entry = Entry.from_dict({'course': 261, 'date': None, 'hour': 2})

    assert entry.natural_key == ('261', '', '2')


def test_entry_to_dict_keeps_creation_time():
    created = datetime(2024, 5, 1, 8, 0)
    data = Entry(course='RSA261', created_at=created).to_dict()

    assert data['created_at'] == created
    assert 'id' not in data
    assert 'updated_at' not in data

"""
Firestore record store for the class record book.

`RecordStore` is the single data-access object the web layer talks to. It
owns the metadata document (courses, subjects, teachers) and the lesson
entry collection. Entries are keyed deterministically by course, date and
hour, so uniqueness of that triple is enforced by document identity and
checked inside Firestore transactions.

Reads never raise: backend failures are logged and replaced by empty
defaults. Writes return a `Result`.
"""

import logging
import re
from datetime import date, datetime, timezone

from google.api_core import exceptions as gexc
from google.cloud import firestore
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from classbook.firestore_models import (
    Course, Entry, Metadata, empty_timetable, normalize_timetable,
)
from classbook.results import ErrorKind, Result

logger = logging.getLogger(__name__)

METADATA_LISTS = ('courses', 'subjects', 'teachers')
KEY_FIELDS = ('course', 'date', 'hour')
ENTRY_ID_SEPARATOR = '__'

_TRANSIENT_ERRORS = (gexc.ServiceUnavailable, gexc.DeadlineExceeded)

_read_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.2, max=2),
    retry=retry_if_exception_type(_TRANSIENT_ERRORS),
    reraise=True,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _now():
    return datetime.now(timezone.utc)


def _safe_key_part(value):
    text = str(value if value is not None else '').strip()
    text = re.sub(r'\s+', '_', text)
    return re.sub(r'[^A-Za-z0-9_\-]', '', text)


def make_entry_id(course, date_, hour):
    """Deterministic document ID for an entry, e.g. RSA261__2024-05-01__1."""
    return ENTRY_ID_SEPARATOR.join(_safe_key_part(p) for p in (course, date_, hour))


def make_course_id(name):
    """Course ID from its display name: whitespace removed, uppercased."""
    if not isinstance(name, str):
        return ''
    return re.sub(r'\s+', '', name).upper()


def _student_list(students):
    """Roster as a list of names, or None when `students` is not a list."""
    if students is None:
        return []
    if not isinstance(students, (list, tuple)):
        return None
    return [str(s) for s in students]


def _key_of(data):
    return tuple(str(data.get(k) if data.get(k) is not None else '') for k in KEY_FIELDS)


def _entry_fields(fields):
    """Copy of a partial entry update with the document ID dropped and the
    key fields coerced to strings."""
    if isinstance(fields, Entry):
        fields = fields.to_dict()
    data = {k: v for k, v in dict(fields or {}).items() if k != 'id'}
    for key in KEY_FIELDS:
        if key in data and data[key] is not None:
            data[key] = str(data[key])
    return data


def _metadata_payload(meta):
    if isinstance(meta, Metadata):
        return meta.to_dict()
    payload = dict(meta or {})
    if 'courses' in payload:
        payload['courses'] = [
            c.to_dict() if isinstance(c, Course) else c for c in payload['courses'] or []
        ]
    return payload


# ---------------------------------------------------------------------------
# Transaction bodies (run through firestore.transactional)
# ---------------------------------------------------------------------------

def _create_if_absent(transaction, ref, data):
    snapshot = ref.get(transaction=transaction)
    if snapshot.exists:
        return Result.failure(ErrorKind.DUPLICATE)
    transaction.set(ref, data)
    return Result.success(ref.id)


def _update_if_unlocked(transaction, ref, fields):
    snapshot = ref.get(transaction=transaction)
    if not snapshot.exists:
        return Result.failure(ErrorKind.NOT_FOUND)
    if (snapshot.to_dict() or {}).get('locked'):
        return Result.failure(ErrorKind.LOCKED)
    transaction.update(ref, fields)
    return Result.success(ref.id)


def _move_entry(transaction, old_ref, new_ref, fields):
    # All reads precede writes inside a Firestore transaction.
    target = new_ref.get(transaction=transaction)
    if target.exists:
        return Result.failure(ErrorKind.DUPLICATE_TARGET)
    old = old_ref.get(transaction=transaction)
    if not old.exists:
        return Result.failure(ErrorKind.NOT_FOUND)
    old_data = old.to_dict() or {}
    if old_data.get('locked'):
        return Result.failure(ErrorKind.LOCKED)
    transaction.set(new_ref, {**old_data, **fields})
    transaction.delete(old_ref)
    return Result.success(new_ref.id)


def _flip_lock(transaction, ref):
    snapshot = ref.get(transaction=transaction)
    if not snapshot.exists:
        return Result.failure(ErrorKind.NOT_FOUND)
    locked = bool((snapshot.to_dict() or {}).get('locked'))
    transaction.update(ref, {'locked': not locked, 'updated_at': _now()})
    return Result.success(ref.id)


# ---------------------------------------------------------------------------
# Example data for demo deployments
# ---------------------------------------------------------------------------

EXAMPLE_COURSE_NAME = 'RSA 261'
EXAMPLE_SUBJECTS = ['Deutsch', 'Mathematik', 'Englisch', 'Informatik']
EXAMPLE_TEACHERS = ['Frau Muster', 'Herr Beispiel']
EXAMPLE_STUDENTS = ['Anna Becker', 'Ben Schulz', 'Clara Wagner']


def _example_metadata():
    course = Course(
        id=make_course_id(EXAMPLE_COURSE_NAME),
        name=EXAMPLE_COURSE_NAME,
        students=list(EXAMPLE_STUDENTS),
        timetable=empty_timetable(),
    )
    return Metadata(
        courses=[course],
        subjects=list(EXAMPLE_SUBJECTS),
        teachers=list(EXAMPLE_TEACHERS),
    ).to_dict()


def _example_entry():
    return Entry(
        course=make_course_id(EXAMPLE_COURSE_NAME),
        date=date.today().isoformat(),
        hour='1',
        subject=EXAMPLE_SUBJECTS[0],
        teacher=EXAMPLE_TEACHERS[0],
        content='Einführung',
    )


# ========================================================================
# Record store
# ========================================================================

class RecordStore:
    """Facade over the Firestore client for metadata and lesson entries."""

    def __init__(self, db, meta_collection='meta', meta_document='kb_meta',
                 entries_collection='entries', seed_example_data=False):
        self._db = db
        self.meta_collection = meta_collection
        self.meta_document = meta_document
        self.entries_collection = entries_collection
        self.seed_example_data = seed_example_data

    @classmethod
    def from_config(cls, db, config):
        return cls(
            db,
            meta_collection=config.get('META_COLLECTION', 'meta'),
            meta_document=config.get('META_DOCUMENT', 'kb_meta'),
            entries_collection=config.get('ENTRIES_COLLECTION', 'entries'),
            seed_example_data=config.get('SEED_EXAMPLE_DATA', False),
        )

    def _meta_ref(self):
        return self._db.collection(self.meta_collection).document(self.meta_document)

    def _entries(self):
        return self._db.collection(self.entries_collection)

    def _run_transaction(self, fn, *args):
        try:
            return firestore.transactional(fn)(self._db.transaction(), *args)
        except ValueError as err:
            # The client raises ValueError once commit retries are exhausted
            logger.exception('Transaction %s gave up', fn.__name__)
            return Result.failure(ErrorKind.BACKEND_FAILURE, str(err))

    # --------------------------------------------------------------------
    # Metadata  (document: meta/kb_meta)
    # --------------------------------------------------------------------

    @_read_retry
    def _fetch_metadata(self):
        """Raw metadata dict, or None when the document does not exist yet."""
        snapshot = self._meta_ref().get()
        if not snapshot.exists:
            return None
        return snapshot.to_dict() or {}

    def load_metadata(self):
        """Return the metadata document, or empty metadata if absent or unreadable."""
        try:
            data = self._fetch_metadata()
        except gexc.GoogleAPIError:
            logger.exception('load_metadata failed; using empty metadata')
            return Metadata()
        return Metadata.from_dict(data)

    def save_metadata(self, meta):
        """Merge the given fields into the metadata document.

        Accepts a `Metadata` (all three lists are written) or a partial
        mapping; fields not present are left untouched.
        """
        try:
            self._meta_ref().set(_metadata_payload(meta), merge=True)
        except gexc.GoogleAPIError as err:
            logger.exception('save_metadata failed')
            return Result.failure(ErrorKind.BACKEND_FAILURE, str(err))
        return Result.success()

    def _write_courses(self, meta):
        self._meta_ref().set({'courses': [c.to_dict() for c in meta.courses]}, merge=True)

    # --------------------------------------------------------------------
    # Entries  (collection: entries)
    # --------------------------------------------------------------------

    @_read_retry
    def _stream_entries(self, query):
        return [Entry.from_dict(doc.to_dict() or {}, doc.id) for doc in query.stream()]

    def list_entries(self):
        """All entries ordered by date and hour.

        The ordered query needs a composite index; when it fails the
        collection is scanned unordered instead.
        """
        entries = self._entries()
        try:
            return self._stream_entries(entries.order_by('date').order_by('hour'))
        except gexc.GoogleAPIError:
            logger.exception('Ordered entry query failed; falling back to unordered scan')
        try:
            return self._stream_entries(entries)
        except gexc.GoogleAPIError:
            logger.exception('Unordered entry scan failed')
            return []

    def get_entry(self, entry_id):
        """Get an entry by ID. Returns Entry or None."""
        if not entry_id:
            return None
        try:
            snapshot = self._entries().document(entry_id).get()
        except gexc.GoogleAPIError:
            logger.exception('get_entry %s failed', entry_id)
            return None
        if not snapshot.exists:
            return None
        return Entry.from_dict(snapshot.to_dict() or {}, snapshot.id)

    def add_entry(self, entry):
        """Create an entry under its deterministic ID unless one already exists.

        Fields the Entry model does not know are stored as given.
        """
        if isinstance(entry, Entry):
            data = entry.to_dict()
        else:
            raw = _entry_fields(entry)
            entry = Entry.from_dict(raw)
            data = entry.to_dict()
            data.update({k: v for k, v in raw.items() if k not in data})
        if not all(_safe_key_part(p) for p in entry.natural_key):
            return Result.failure(ErrorKind.MISSING_ARGUMENT, 'missing course, date or hour')

        doc_id = make_entry_id(*entry.natural_key)
        ref = self._entries().document(doc_id)
        try:
            result = self._run_transaction(_create_if_absent, ref, data)
        except gexc.GoogleAPIError as err:
            logger.exception('add_entry %s failed', doc_id)
            return Result.failure(ErrorKind.BACKEND_FAILURE, str(err))

        if result.ok:
            logger.info('Created entry %s', doc_id)
        else:
            logger.info('Rejected entry %s: %s', doc_id, result.reason)
        return result

    def update_entry(self, entry_id, fields):
        """Update an unlocked entry.

        If course, date or hour change, the entry moves to its new
        deterministic ID: the new document is created and the old one
        deleted in one transaction, failing if the target already exists.
        """
        if not entry_id:
            return Result.failure(ErrorKind.MISSING_ARGUMENT)
        fields = _entry_fields(fields)
        old_ref = self._entries().document(entry_id)

        try:
            snapshot = old_ref.get()
            if not snapshot.exists:
                return Result.failure(ErrorKind.NOT_FOUND)
            current = snapshot.to_dict() or {}
            if current.get('locked'):
                return Result.failure(ErrorKind.LOCKED)

            fields['updated_at'] = _now()
            merged = {**current, **fields}
            if not all(_safe_key_part(p) for p in _key_of(merged)):
                return Result.failure(ErrorKind.MISSING_ARGUMENT, 'missing course, date or hour')
            new_id = make_entry_id(*_key_of(merged))

            if _key_of(merged) == _key_of(current) or new_id == entry_id:
                return self._run_transaction(_update_if_unlocked, old_ref, fields)

            new_ref = self._entries().document(new_id)
            result = self._run_transaction(_move_entry, old_ref, new_ref, fields)
        except gexc.GoogleAPIError as err:
            logger.exception('update_entry %s failed', entry_id)
            return Result.failure(ErrorKind.BACKEND_FAILURE, str(err))

        if result.ok:
            logger.info('Moved entry %s to %s', entry_id, new_id)
        else:
            logger.info('Rejected move of entry %s to %s: %s', entry_id, new_id, result.reason)
        return result

    def delete_entry_by_id(self, entry_id):
        """Delete an entry. Deleting a missing entry is not an error."""
        if not entry_id:
            return Result.failure(ErrorKind.MISSING_ARGUMENT)
        try:
            self._entries().document(entry_id).delete()
        except gexc.GoogleAPIError as err:
            logger.exception('delete_entry_by_id %s failed', entry_id)
            return Result.failure(ErrorKind.BACKEND_FAILURE, str(err))
        return Result.success(entry_id)

    def toggle_lock_entry(self, entry_id):
        """Flip the lock flag of an entry."""
        if not entry_id:
            return Result.failure(ErrorKind.MISSING_ARGUMENT)
        ref = self._entries().document(entry_id)
        try:
            return self._run_transaction(_flip_lock, ref)
        except gexc.GoogleAPIError as err:
            logger.exception('toggle_lock_entry %s failed', entry_id)
            return Result.failure(ErrorKind.BACKEND_FAILURE, str(err))

    # --------------------------------------------------------------------
    # Courses  (embedded in the metadata document)
    # --------------------------------------------------------------------

    def get_students_for_course(self, course_id):
        course = self.load_metadata().find_course(course_id)
        return list(course.students) if course else []

    def add_course(self, name, students=None):
        course_id = make_course_id(name)
        if not course_id:
            return Result.failure(ErrorKind.MISSING_ARGUMENT, 'missing name')
        roster = _student_list(students)
        if roster is None:
            return Result.failure(ErrorKind.MISSING_ARGUMENT, 'students must be a list')
        try:
            meta = Metadata.from_dict(self._fetch_metadata())
            if meta.find_course(course_id):
                return Result.failure(ErrorKind.DUPLICATE, 'exists')
            meta.courses.append(Course(
                id=course_id,
                name=name.strip(),
                students=roster,
                timetable=empty_timetable(),
            ))
            self._write_courses(meta)
        except gexc.GoogleAPIError as err:
            logger.exception('add_course %s failed', course_id)
            return Result.failure(ErrorKind.BACKEND_FAILURE, str(err))
        logger.info('Created course %s', course_id)
        return Result.success(course_id)

    def update_course_students(self, course_id, students):
        roster = _student_list(students)
        if roster is None:
            return Result.failure(ErrorKind.MISSING_ARGUMENT, 'students must be a list')
        try:
            meta = Metadata.from_dict(self._fetch_metadata())
            course = meta.find_course(course_id)
            if course is None:
                return Result.failure(ErrorKind.NOT_FOUND)
            course.students = roster
            self._write_courses(meta)
        except gexc.GoogleAPIError as err:
            logger.exception('update_course_students %s failed', course_id)
            return Result.failure(ErrorKind.BACKEND_FAILURE, str(err))
        return Result.success(course_id)

    def delete_course(self, course_id):
        try:
            meta = Metadata.from_dict(self._fetch_metadata())
            meta.courses = [c for c in meta.courses if c.id != course_id]
            self._write_courses(meta)
        except gexc.GoogleAPIError as err:
            logger.exception('delete_course %s failed', course_id)
            return Result.failure(ErrorKind.BACKEND_FAILURE, str(err))
        return Result.success()

    # --------------------------------------------------------------------
    # Repair / seed
    # --------------------------------------------------------------------

    def ensure_defaults(self, seed=None):
        """Make the metadata document well-formed.

        Missing lists are created and every course timetable is normalized
        to six slots per school day. With seeding enabled, an entirely empty
        catalog is filled with an example course, subjects, teachers and one
        sample entry. The document is written only when something changed,
        so repeated calls are no-ops.
        """
        if seed is None:
            seed = self.seed_example_data
        try:
            data = dict(self._fetch_metadata() or {})
        except gexc.GoogleAPIError as err:
            logger.exception('ensure_defaults could not read metadata')
            return Result.failure(ErrorKind.BACKEND_FAILURE, str(err))

        changed = False
        for key in METADATA_LISTS:
            if not isinstance(data.get(key), list):
                data[key] = []
                changed = True

        seeded = False
        if seed and not any(data[key] for key in METADATA_LISTS):
            data.update(_example_metadata())
            changed = seeded = True

        courses = []
        for course in data['courses']:
            if isinstance(course, dict):
                timetable = normalize_timetable(course.get('timetable'))
                if timetable != course.get('timetable'):
                    course = dict(course, timetable=timetable)
                    changed = True
            courses.append(course)
        data['courses'] = courses

        if changed:
            try:
                self._meta_ref().set(data, merge=True)
            except gexc.GoogleAPIError as err:
                logger.exception('ensure_defaults could not write metadata')
                return Result.failure(ErrorKind.BACKEND_FAILURE, str(err))
            logger.info('Metadata repaired%s', ' and seeded' if seeded else '')

        if seeded:
            result = self.add_entry(_example_entry())
            if not result.ok and result.error is not ErrorKind.DUPLICATE:
                return result
        return Result.success()

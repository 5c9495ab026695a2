"""
Bulk loaders that fill the catalogue collections.

- import_rows(): CSV/Excel uploads, one entity type per file, upserted by
  natural key (room number, lab number, teacher email, ...)
- import_timetable_grid(): scans an existing timetable grid workbook for
  time columns, teachers, rooms and sections
- import_department_json(): builds a complete department setup (slots, labs,
  teachers, sections, approved registrations) from a JSON description
"""
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Set

from pydantic import ValidationError

from csv_processor import get_missing_columns
from models import db, Lab, Registration, Room, Section, Teacher, TimeSlot
from schemas import (
    LabPayload,
    RegistrationPayload,
    RoomPayload,
    TeacherPayload,
    TimeSlotPayload,
    format_errors,
    validate_payload,
)

WEEKDAYS = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday']
MAX_REPORTED_ERRORS = 20


def parse_int(value, default=0):
    try:
        return int(float(value)) if value not in (None, '', 'nan') else default
    except (TypeError, ValueError):
        return default


def parse_bool(value, default=False):
    if value in (None, ''):
        return default
    return str(value).strip().lower() in ('1', 'true', 'yes', 'y', 'lab')


def split_list(value, separators=',;'):
    if not value or value == 'nan':
        return []
    if isinstance(value, list):
        return value
    return [item.strip() for item in re.split(f'[{re.escape(separators)}]', str(value)) if item.strip()]


# --------------------------------------------------------------------- #
# Spreadsheet uploads
# --------------------------------------------------------------------- #
def row_to_room(row, lookups):
    return {
        'room_number': row.get('room_number', ''),
        'room_name': row.get('room_name') or row.get('room_number', ''),
        'capacity': parse_int(row.get('capacity'), 0),
        'room_type': row.get('room_type') or 'Classroom',
        'floor': parse_int(row.get('floor'), 1),
        'building': row.get('building') or 'Main',
        'facilities': split_list(row.get('facilities')),
    }


def row_to_lab(row, lookups):
    return {
        'lab_number': row.get('lab_number', ''),
        'lab_name': row.get('lab_name') or row.get('lab_number', ''),
        'capacity': parse_int(row.get('capacity'), 0),
        'lab_type': row.get('lab_type') or 'Computer Lab',
        'floor': parse_int(row.get('floor'), 1),
        'building': row.get('building') or 'Main',
        'software': split_list(row.get('software')),
    }


def row_to_teacher(row, lookups):
    return {
        'name': row.get('name', ''),
        'email': row.get('email', ''),
        'department': row.get('department') or 'TBD',
        'subjects': split_list(row.get('subjects')),
        'max_hours_per_week': parse_int(row.get('max_hours_per_week'), 40),
        'available_days': split_list(row.get('available_days')) or list(WEEKDAYS),
    }


def row_to_time_slot(row, lookups):
    payload = {
        'day': (row.get('day') or '').strip().capitalize(),
        'start_time': row.get('start_time', ''),
        'end_time': row.get('end_time', ''),
        'slot_type': (row.get('slot_type') or 'Lecture').strip().capitalize(),
    }
    if row.get('duration'):
        payload['duration'] = parse_int(row.get('duration'))
    return payload


def row_to_registration(row, lookups):
    section_key = str(row.get('section', '')).strip().lower()
    section_id = lookups['sections'].get(section_key)
    if section_id is None:
        raise ValueError(f"Unknown section '{row.get('section')}'")

    teacher_key = str(row.get('teacher', '')).strip().lower()
    teacher_id = lookups['teachers'].get(teacher_key)
    if teacher_id is None:
        raise ValueError(f"Unknown teacher '{row.get('teacher')}'")

    slot_ids = [parse_int(s, -1) for s in split_list(row.get('time_slots'))]
    return {
        'section_id': section_id,
        'subject': {
            'name': row.get('subject_name', ''),
            'code': row.get('subject_code', ''),
            'credits': parse_int(row.get('credits'), 0),
            'hours_per_week': parse_int(row.get('hours_per_week'), 1),
            'is_lab': parse_bool(row.get('is_lab')),
        },
        'teacher_id': teacher_id,
        'time_slot_ids': [s for s in slot_ids if s > 0] or list(lookups['time_slot_ids']),
        'semester': row.get('semester', ''),
        'academic_year': row.get('academic_year', ''),
        'status': (row.get('status') or 'Pending').capitalize(),
        'priority': parse_int(row.get('priority'), 1),
    }


def registration_key(data):
    return (data['section_id'], data['subject']['code'].lower(), data['teacher_id'],
            data['semester'].lower(), data['academic_year'].lower())


@dataclass(frozen=True)
class ImportSpec:
    model: type
    schema: type
    required: Set[str]
    parse: Callable[[Dict[str, Any], Dict[str, Any]], Dict[str, Any]]
    key: Callable[[Dict[str, Any]], Any]


IMPORT_SPECS = {
    'rooms': ImportSpec(Room, RoomPayload, {'room_number', 'capacity'}, row_to_room,
                        lambda d: d['room_number']),
    'labs': ImportSpec(Lab, LabPayload, {'lab_number', 'capacity'}, row_to_lab,
                       lambda d: d['lab_number']),
    'teachers': ImportSpec(Teacher, TeacherPayload, {'name', 'email'}, row_to_teacher,
                           lambda d: d['email'].lower()),
    'timeslots': ImportSpec(TimeSlot, TimeSlotPayload, {'day', 'start_time', 'end_time'}, row_to_time_slot,
                            lambda d: (d['day'], d['start_time'], d['end_time'])),
    'registrations': ImportSpec(Registration, RegistrationPayload,
                                {'section', 'teacher', 'subject_name', 'subject_code', 'hours_per_week',
                                 'semester', 'academic_year'},
                                row_to_registration, registration_key),
}


def build_lookups():
    """Name/email -> id maps used to resolve registration rows."""
    sections = {}
    for s in Section.query.filter_by(is_active=True).all():
        sections[str(s.section_name).lower()] = s.id
        sections[str(s.id)] = s.id
    teachers = {}
    for t in Teacher.query.filter_by(is_active=True).all():
        teachers[str(t.email).lower()] = t.id
        teachers.setdefault(str(t.name).lower(), t.id)
    time_slot_ids = [s.id for s in TimeSlot.query.filter_by(is_active=True).order_by('id').all()]
    return {'sections': sections, 'teachers': teachers, 'time_slot_ids': time_slot_ids}


def import_rows(entity: str, chunks) -> Dict[str, Any]:
    """
    Upsert uploaded rows for one entity type.

    Rows that fail validation are skipped and reported; the rest are
    committed chunk by chunk.

    Raises:
        KeyError: entity has no import support
        ValueError: required columns are missing
    """
    spec = IMPORT_SPECS[entity]
    lookups = build_lookups() if entity == 'registrations' else {}
    existing = {spec.key(obj.to_dict()): obj for obj in spec.model.query.all()}

    created, updated, skipped = 0, 0, 0
    errors: List[Dict[str, Any]] = []
    line = 1  # header row
    for chunk_idx, chunk in enumerate(chunks):
        if chunk_idx == 0 and chunk:
            missing = get_missing_columns(set(chunk[0].keys()), spec.required)
            if missing:
                raise ValueError(f'Missing columns: {", ".join(sorted(missing))}')

        for row in chunk:
            line += 1
            try:
                data = validate_payload(spec.schema, spec.parse(row, lookups))
            except ValidationError as exc:
                skipped += 1
                errors.append({'row': line, 'errors': format_errors(exc)})
                continue
            except ValueError as exc:
                skipped += 1
                errors.append({'row': line, 'errors': [{'field': '__root__', 'message': str(exc)}]})
                continue

            key = spec.key(data)
            obj = existing.get(key)
            if obj is not None:
                obj.update(**data)
                updated += 1
            else:
                obj = spec.model(**data)
                existing[key] = obj
                created += 1
            db.session.add(obj)

        # Commit after each chunk for better memory management
        db.session.commit()

    print(f"[IMPORT] {entity}: created={created}, updated={updated}, skipped={skipped}")
    return {'created': created, 'updated': updated, 'skipped': skipped, 'errors': errors[:MAX_REPORTED_ERRORS]}


# --------------------------------------------------------------------- #
# Timetable grid workbook
# --------------------------------------------------------------------- #
TIME_LABEL = re.compile(r'^(\d{1,2}:\d{2})\s*[-–]\s*(\d{1,2}:\d{2})$')
# e.g. "DBMS(NMN)-232" or "VLSI(MSS)-239-C"
CELL_PATTERN = re.compile(r'^([A-Za-z0-9 &+./-]+?)\s*\(([^)]+)\)\s*-\s*([A-Za-z0-9-]+)$')
DEFAULT_GRID_SECTIONS = ['BE(A)', 'BE(B)', 'TE(A)', 'TE(B)', 'TE(C)', 'SE(A)', 'SE(B)', 'SE(C)']


def parse_time_label(label) -> Optional[Dict[str, Any]]:
    if label is None:
        return None
    m = TIME_LABEL.match(re.sub(r'\s+', ' ', str(label)).strip())
    if not m:
        return None
    start_time, end_time = m.group(1), m.group(2)
    sh, sm = map(int, start_time.split(':'))
    eh, em = map(int, end_time.split(':'))
    return {'start_time': start_time, 'end_time': end_time, 'duration': (eh * 60 + em) - (sh * 60 + sm)}


def parse_cell_value(value) -> Optional[Dict[str, Optional[str]]]:
    if value is None or not str(value).strip():
        return None
    text = str(value).strip()
    if text.lower() == 'library':
        return {'subject_name': 'Library', 'teacher_code': None, 'room_code': 'Library'}
    m = CELL_PATTERN.match(text)
    if m:
        return {'subject_name': m.group(1).strip(), 'teacher_code': m.group(2).strip(), 'room_code': m.group(3).strip()}
    return {'subject_name': text, 'teacher_code': None, 'room_code': None}


def scan_timetable_grid(rows: List[List[Any]]) -> Dict[str, Any]:
    """
    Find the time header row (at least two "HH:MM - HH:MM" cells) and collect
    the teacher codes, room codes and class names used below it. Column 0 is
    the (possibly merged) day, column 1 the class.
    """
    header_idx = next(
        (i for i, row in enumerate(rows) if sum(1 for c in row if parse_time_label(c)) >= 2),
        None,
    )
    if header_idx is None:
        raise ValueError('Could not detect time header row. Ensure a row has time ranges like 09:00 - 10:00')

    time_columns = []
    for idx, cell in enumerate(rows[header_idx]):
        parsed = parse_time_label(cell)
        if parsed:
            time_columns.append({'index': idx, **parsed})

    teacher_codes, room_codes = {}, {}
    sections = dict.fromkeys(DEFAULT_GRID_SECTIONS)
    for row in rows[header_idx + 1:]:
        if not row:
            continue
        cls = str(row[1]).strip() if len(row) > 1 and row[1] is not None else ''
        if cls:
            sections[cls] = None
        for col in time_columns:
            cell = parse_cell_value(row[col['index']] if col['index'] < len(row) else None)
            if not cell:
                continue
            if cell['teacher_code']:
                teacher_codes[cell['teacher_code']] = None
            if cell['room_code']:
                room_codes[cell['room_code']] = None

    return {
        'time_columns': time_columns,
        'teacher_codes': list(teacher_codes),
        'room_codes': list(room_codes),
        'sections': list(sections),
    }


def import_timetable_grid(rows: List[List[Any]]) -> Dict[str, int]:
    scan = scan_timetable_grid(rows)
    counts = {'time_slots': 0, 'teachers': 0, 'rooms': 0, 'sections': 0}

    for col in scan['time_columns']:
        if TimeSlot.query.filter_by(start_time=col['start_time'], end_time=col['end_time']).first() is None:
            db.session.add(TimeSlot(day='Monday', start_time=col['start_time'], end_time=col['end_time'],
                                    duration=col['duration'], slot_type='Lecture'))
            counts['time_slots'] += 1

    for code in scan['teacher_codes']:
        if Teacher.query.filter_by(name=code).first() is None:
            db.session.add(Teacher(name=code, email=f'{code.lower()}@example.edu', department='TBD',
                                   max_hours_per_week=40, available_days=list(WEEKDAYS)))
            counts['teachers'] += 1

    for number in scan['room_codes']:
        if Room.query.filter_by(room_number=number).first() is None:
            db.session.add(Room(room_number=number, room_name=number, capacity=40, room_type='Classroom',
                                floor=1, building='Main'))
            counts['rooms'] += 1

    for name in scan['sections']:
        if Section.query.filter_by(section_name=name).first() is None:
            db.session.add(Section(section_name=name, department='Engineering', year=1, semester=1, strength=40))
            counts['sections'] += 1

    db.session.commit()
    print(f"[IMPORT] Excel scan completed: {counts}")
    return counts


# --------------------------------------------------------------------- #
# Department JSON
# --------------------------------------------------------------------- #
FIXED_SLOTS = [
    {'start_time': '09:00', 'end_time': '10:00', 'duration': 60, 'slot_type': 'Lecture'},
    {'start_time': '10:00', 'end_time': '11:00', 'duration': 60, 'slot_type': 'Lecture'},
    {'start_time': '11:15', 'end_time': '12:15', 'duration': 60, 'slot_type': 'Lecture'},
    {'start_time': '12:15', 'end_time': '13:15', 'duration': 60, 'slot_type': 'Lecture'},
    {'start_time': '14:00', 'end_time': '15:00', 'duration': 60, 'slot_type': 'Lecture'},
    {'start_time': '14:00', 'end_time': '16:00', 'duration': 120, 'slot_type': 'Lab'},
    {'start_time': '15:00', 'end_time': '16:00', 'duration': 60, 'slot_type': 'Lecture'},
]
DEFAULT_SEMESTER = 'Sem I'
DEFAULT_ACADEMIC_YEAR = '2025-2026'
YEAR_LEVELS = {'SE': 2, 'TE': 3, 'BE': 4}
LIBRARIAN_CODE = 'LIB'
LIBRARY_SESSIONS_PER_WEEK = 2


def section_name_for(year_key, div_key):
    return f'{year_key}({div_key})'


def pick_teacher_code(section_info, teachers_map, subject_name) -> Optional[str]:
    """Prefer a teacher listed on the division who teaches the subject, then anyone who does."""
    wanted = subject_name.lower()

    def teaches(code):
        info = teachers_map.get(code) or {}
        return any(wanted in str(s).lower() for s in info.get('subjects') or [])

    for code in section_info.get('teachers') or []:
        if teaches(code):
            return code
    return next((code for code in teachers_map if teaches(code)), None)


def _upsert(model_cls, match: Dict[str, Any], fields: Dict[str, Any]):
    obj = model_cls.query.filter_by(**match).first()
    if obj is None:
        obj = model_cls(**match, **fields)
        db.session.add(obj)
        db.session.commit()
    return obj


def ensure_fixed_time_slots() -> List[TimeSlot]:
    slots = []
    for day in WEEKDAYS:
        for slot in FIXED_SLOTS:
            match = {'day': day, 'start_time': slot['start_time'], 'end_time': slot['end_time']}
            slots.append(_upsert(TimeSlot, match, {'duration': slot['duration'], 'slot_type': slot['slot_type']}))
    return slots


def upsert_labs(labs_json):
    for lab_name, meta in labs_json.items():
        _upsert(Lab, {'lab_number': lab_name}, {
            'lab_name': lab_name,
            'capacity': (meta or {}).get('batch_size') or 20,
            'lab_type': 'Computer Lab',
            'floor': 1,
            'building': 'Main',
        })
        # lab names double as room codes for display
        _upsert(Room, {'room_number': lab_name}, {
            'room_name': lab_name, 'capacity': 40, 'room_type': 'Classroom', 'floor': 1, 'building': 'Main',
        })


def upsert_teachers(teachers_json) -> Dict[str, int]:
    code_to_id = {}
    for code, info in teachers_json.items():
        info = info or {}
        teacher = _upsert(Teacher, {'name': info.get('name') or code}, {
            'email': f'{code.lower()}@example.edu',
            'department': 'CSE',
            'subjects': info.get('subjects') or [],
            'max_hours_per_week': info.get('max_load') or 12,
            'available_days': list(WEEKDAYS),
        })
        code_to_id[code] = teacher.id

    librarian = _upsert(Teacher, {'name': 'Librarian'}, {
        'email': 'librarian@example.edu',
        'department': 'Library',
        'subjects': ['Library'],
        'max_hours_per_week': 20,
        'available_days': list(WEEKDAYS),
    })
    code_to_id[LIBRARIAN_CODE] = librarian.id
    return code_to_id


def upsert_sections(years_json) -> Dict[str, int]:
    name_to_id = {}
    for year_key, year_obj in years_json.items():
        for div_key in (year_obj or {}).get('divisions') or {}:
            name = section_name_for(year_key, div_key)
            section = _upsert(Section, {'section_name': name}, {
                'department': 'CSE', 'year': YEAR_LEVELS.get(year_key, 1), 'semester': 1, 'strength': 60,
            })
            name_to_id[name] = section.id
    return name_to_id


def _register(section_id, teacher_id, subject, slot_ids, priority=1):
    code = subject['code']
    match = {
        'section_id': section_id,
        'teacher_id': teacher_id,
        'subject.code': code,
        'semester': DEFAULT_SEMESTER,
        'academic_year': DEFAULT_ACADEMIC_YEAR,
    }
    if Registration.query.filter_by(**match).first() is not None:
        return 0
    db.session.add(Registration(
        section_id=section_id,
        teacher_id=teacher_id,
        subject=dict(subject),
        time_slot_ids=list(slot_ids),
        semester=DEFAULT_SEMESTER,
        academic_year=DEFAULT_ACADEMIC_YEAR,
        status='Approved',
        priority=priority,
    ))
    return 1


def create_approved_registrations(data, section_ids, teacher_ids, slots) -> int:
    lecture_slot_ids = [s.id for s in slots if s.duration == 60]
    lab_slot_ids = [s.id for s in slots if s.start_time == '14:00' and s.end_time == '16:00']
    fallback = lecture_slot_ids[:1]

    created = 0
    for year_key, year_obj in (data.get('years') or {}).items():
        for div_key, section_info in ((year_obj or {}).get('divisions') or {}).items():
            section_id = section_ids.get(section_name_for(year_key, div_key))
            if section_id is None:
                continue

            for subject_name in section_info.get('subjects') or []:
                code = pick_teacher_code(section_info, data.get('teachers') or {}, subject_name)
                if code is None or code not in teacher_ids:
                    print(f"[IMPORT] No teacher found for {subject_name} ({section_name_for(year_key, div_key)})")
                    continue
                subject = {'name': subject_name, 'code': subject_name.upper(), 'credits': 3,
                           'hours_per_week': 3, 'is_lab': False}
                created += _register(section_id, teacher_ids[code], subject, lecture_slot_ids or fallback)

            for lab_name in section_info.get('labs') or []:
                meta = (data.get('labs') or {}).get(lab_name)
                if not meta or meta.get('teacher') not in teacher_ids:
                    continue
                linked = meta.get('linked_subject') or lab_name
                subject = {'name': lab_name, 'code': linked.upper(), 'credits': 1,
                           'hours_per_week': 2, 'is_lab': True}
                created += _register(section_id, teacher_ids[meta['teacher']], subject, lab_slot_ids or fallback)

            librarian_id = teacher_ids.get(LIBRARIAN_CODE)
            if librarian_id is not None:
                subject = {'name': 'Library', 'code': 'LIB', 'credits': 0,
                           'hours_per_week': LIBRARY_SESSIONS_PER_WEEK, 'is_lab': False}
                created += _register(section_id, librarian_id, subject, lecture_slot_ids or fallback)

    db.session.commit()
    return created


def import_department_json(data: Dict[str, Any]) -> Dict[str, int]:
    slots = ensure_fixed_time_slots()
    upsert_labs(data.get('labs') or {})
    teacher_ids = upsert_teachers(data.get('teachers') or {})
    section_ids = upsert_sections(data.get('years') or {})
    registrations = create_approved_registrations(data, section_ids, teacher_ids, slots)
    summary = {
        'time_slots': len(slots),
        'teachers': len(teacher_ids),
        'sections': len(section_ids),
        'registrations': registrations,
    }
    print(f"[IMPORT] Department import complete: {summary}")
    return summary

"""
Loads the generator's inputs from MongoDB and stores its result.

The engine itself never touches the database; everything it reads comes
through load_generation_inputs() and everything it produces is saved by
save_timetable().
"""
import re
from datetime import datetime, timezone
from typing import Any, Dict, List

from models import db, Registration, Room, Lab, Section, Teacher, TimeSlot, Timetable
from scheduler import TimetableGenerator, sort_time_slots


def exact_text_pattern(value) -> Dict[str, str]:
    """Case-insensitive whole-string match for a trimmed value."""
    return {'$regex': f'^{re.escape(str(value).strip())}$', '$options': 'i'}


def registration_filter(section_ids, semester, academic_year) -> Dict[str, Any]:
    return {
        'section_id': {'$in': list(section_ids)},
        'semester': exact_text_pattern(semester),
        'academic_year': exact_text_pattern(academic_year),
        'status': 'Approved',
    }


def load_generation_inputs(section_ids, semester, academic_year):
    # Sorting by id fixes the tie order between registrations of equal priority
    registrations = (
        Registration.query.filter(registration_filter(section_ids, semester, academic_year))
        .order_by('id')
        .all()
    )
    time_slots = sort_time_slots(TimeSlot.query.filter_by(is_active=True).order_by('id').all())
    rooms = Room.query.filter_by(is_active=True).order_by('id').all()
    labs = Lab.query.filter_by(is_active=True).order_by('id').all()
    sections = Section.query.filter({'id': {'$in': list(section_ids)}}).all()
    return {
        "registrations": registrations,
        "time_slots": time_slots,
        "rooms": rooms,
        "labs": labs,
        "sections": sections,
    }


def timetable_status(conflicts) -> str:
    return 'Draft' if conflicts else 'Generated'


def build_timetable(name, semester, academic_year, section_ids, schedule, conflicts) -> Timetable:
    return Timetable(
        name=name,
        semester=semester,
        academic_year=academic_year,
        section_ids=list(section_ids),
        schedule=[entry.to_dict() for entry in schedule],
        conflicts=[conflict.to_dict() for conflict in conflicts],
        status=timetable_status(conflicts),
        generated_at=datetime.now(timezone.utc).isoformat(),
    )


def save_timetable(timetable: Timetable) -> Timetable:
    db.session.add(timetable)
    db.session.commit()
    print(f"[PERSIST] Timetable {timetable.id} saved with {len(timetable.schedule)} entries "
          f"and {len(timetable.conflicts)} conflicts ({timetable.status})")
    return timetable


def generate_timetable(name, semester, academic_year, section_ids, config: dict = None) -> Timetable:
    inputs = load_generation_inputs(section_ids, semester, academic_year)
    if not inputs["registrations"]:
        raise ValueError('No approved registrations found for the specified criteria')

    generator = TimetableGenerator(config=config, sections=inputs["sections"])
    schedule, conflicts = generator.generate(
        inputs["registrations"], inputs["time_slots"], inputs["rooms"], inputs["labs"]
    )
    timetable = build_timetable(name, semester, academic_year, section_ids, schedule, conflicts)
    return save_timetable(timetable)


# --------------------------------------------------------------------- #
# Reference expansion for API responses
# --------------------------------------------------------------------- #
def _pick(obj, fields):
    if obj is None:
        return None
    d = {'id': obj.id}
    for f in fields:
        d[f] = getattr(obj, f, None)
    return d


def expand_schedule(schedule: List[dict], lookups: Dict[str, dict]) -> List[dict]:
    """Replace id references in schedule entries with nested summaries."""
    expanded = []
    for entry in schedule:
        slot = lookups['time_slots'].get(entry.get('time_slot_id'))
        expanded.append({
            **entry,
            'time_slot': slot.to_json() if slot is not None else None,
            'teacher': _pick(lookups['teachers'].get(entry.get('teacher_id')), ('name', 'email')),
            'section': _pick(lookups['sections'].get(entry.get('section_id')), ('section_name', 'department')),
            'room': _pick(lookups['rooms'].get(entry.get('room_id')), ('room_number', 'room_name')),
            'lab': _pick(lookups['labs'].get(entry.get('lab_id')), ('lab_number', 'lab_name')),
        })
    return expanded


def _by_id(model_cls, ids):
    ids = sorted({i for i in ids if i is not None})
    if not ids:
        return {}
    return {obj.id: obj for obj in model_cls.query.filter({'id': {'$in': ids}}).all()}


def populate_timetable(timetable: Timetable) -> Dict[str, Any]:
    schedule = getattr(timetable, 'schedule', None) or []
    lookups = {
        'time_slots': _by_id(TimeSlot, (e.get('time_slot_id') for e in schedule)),
        'teachers': _by_id(Teacher, (e.get('teacher_id') for e in schedule)),
        'sections': _by_id(Section, list(timetable.section_ids) + [e.get('section_id') for e in schedule]),
        'rooms': _by_id(Room, (e.get('room_id') for e in schedule)),
        'labs': _by_id(Lab, (e.get('lab_id') for e in schedule)),
    }
    data = timetable.to_json()
    data['sections'] = [
        _pick(lookups['sections'].get(sid), ('section_name', 'department')) for sid in timetable.section_ids
    ]
    data['schedule'] = expand_schedule(schedule, lookups)
    return data

import math
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple


DAYS_OF_WEEK = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday']
_DAY_INDEX = {day: idx for idx, day in enumerate(DAYS_OF_WEEK)}

TEACHER_CONFLICT = 'Teacher Conflict'
ROOM_CONFLICT = 'Room Conflict'
LAB_CONFLICT = 'Lab Conflict'
SECTION_CONFLICT = 'Section Conflict'
NO_AVAILABLE_SLOTS = 'No Available Slots'
CONFLICT_TYPES = (TEACHER_CONFLICT, ROOM_CONFLICT, LAB_CONFLICT, SECTION_CONFLICT, NO_AVAILABLE_SLOTS)


class SchedulingError(Exception):
    """Raised when no placement is possible at all (e.g. empty slot catalogue)."""


def time_to_minutes(time_str):
    """Convert time string (H:MM or HH:MM) to minutes since midnight"""
    h, m = map(int, str(time_str).strip().split(':'))
    return h * 60 + m


def minutes_to_time(minutes):
    """Convert minutes since midnight to time string (HH:MM)"""
    h = minutes // 60
    m = minutes % 60
    return f"{h:02d}:{m:02d}"


def sort_time_slots(time_slots):
    """Order slots by weekday (Monday first), then start time."""
    return sorted(
        time_slots,
        key=lambda s: (_DAY_INDEX.get(s.day, len(DAYS_OF_WEEK)), time_to_minutes(s.start_time)),
    )


@dataclass(frozen=True)
class Subject:
    """Subject snapshot embedded in sections, registrations and schedule entries."""

    name: str
    code: str
    credits: int = 0
    hours_per_week: int = 1
    is_lab: bool = False

    @classmethod
    def from_payload(cls, payload):
        if isinstance(payload, Subject):
            return payload
        payload = payload or {}
        if not isinstance(payload, dict):
            payload = vars(payload)
        return cls(
            name=str(payload.get('name', '')).strip(),
            code=str(payload.get('code', '')).strip(),
            credits=int(payload.get('credits') or 0),
            hours_per_week=int(payload.get('hours_per_week') or 1),
            is_lab=bool(payload.get('is_lab', False)),
        )

    def is_named(self, name: str) -> bool:
        return self.name.strip().lower() == name.strip().lower()

    def to_dict(self, include_hours: bool = True) -> dict:
        d = {'name': self.name, 'code': self.code, 'credits': self.credits, 'is_lab': self.is_lab}
        if include_hours:
            d['hours_per_week'] = self.hours_per_week
        return d


@dataclass(frozen=True)
class ScheduleEntry:
    """One placed session."""

    day: str
    time_slot_id: int
    section_id: int
    subject: Subject
    teacher_id: int
    room_id: Optional[int] = None
    lab_id: Optional[int] = None
    is_lab: bool = False

    def to_dict(self) -> dict:
        return {
            'day': self.day,
            'time_slot_id': self.time_slot_id,
            'section_id': self.section_id,
            'subject': self.subject.to_dict(include_hours=False),
            'teacher_id': self.teacher_id,
            'room_id': self.room_id,
            'lab_id': self.lab_id,
            'is_lab': self.is_lab,
        }


@dataclass
class ConflictRecord:
    type: str
    description: str
    affected_items: List[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {'type': self.type, 'description': self.description, 'affected_items': list(self.affected_items)}


class ConflictRecorder:
    """Append-only list of conflicts, kept in discovery order."""

    def __init__(self):
        self.records: List[ConflictRecord] = []

    def record(self, conflict_type: str, description: str, registration) -> ConflictRecord:
        if conflict_type not in CONFLICT_TYPES:
            raise ValueError(f"Unknown conflict type: {conflict_type}")
        conflict = ConflictRecord(conflict_type, description, [getattr(registration, 'id', None)])
        self.records.append(conflict)
        return conflict

    def __len__(self):
        return len(self.records)

    def __iter__(self):
        return iter(self.records)


@dataclass
class TrackingState:
    """Resource usage committed during one generation run. Only ever grows."""

    section_slots: Set[Tuple[int, int]] = field(default_factory=set)
    teacher_slots: Set[Tuple[int, int]] = field(default_factory=set)
    room_slots: Set[Tuple[int, int]] = field(default_factory=set)
    lab_slots: Set[Tuple[int, int]] = field(default_factory=set)
    section_day_load: Dict[Tuple[int, str], int] = field(default_factory=lambda: defaultdict(int))
    library_days: Set[Tuple[int, str]] = field(default_factory=set)

    def section_busy(self, section_id, slot_id) -> bool:
        return (section_id, slot_id) in self.section_slots

    def teacher_busy(self, teacher_id, slot_id) -> bool:
        return (teacher_id, slot_id) in self.teacher_slots

    def room_free(self, room_id, slot_id) -> bool:
        return (room_id, slot_id) not in self.room_slots

    def lab_free(self, lab_id, slot_id) -> bool:
        return (lab_id, slot_id) not in self.lab_slots

    def day_load(self, section_id, day) -> int:
        return self.section_day_load.get((section_id, day), 0)

    def library_used(self, section_id, day) -> bool:
        return (section_id, day) in self.library_days

    def commit(self, entry: ScheduleEntry, is_library: bool = False):
        self.section_slots.add((entry.section_id, entry.time_slot_id))
        self.teacher_slots.add((entry.teacher_id, entry.time_slot_id))
        if entry.room_id is not None:
            self.room_slots.add((entry.room_id, entry.time_slot_id))
        if entry.lab_id is not None:
            self.lab_slots.add((entry.lab_id, entry.time_slot_id))
        self.section_day_load[(entry.section_id, entry.day)] += 1
        if is_library:
            self.library_days.add((entry.section_id, entry.day))


class TimetableGenerator:
    """
    Greedy weekly scheduler.

    Registrations are placed one session at a time in descending priority
    order. Each session goes through a single pipeline:

    1. clean placement: a slot free for both section and teacher, ranked by
       the section's load on that day, with a free room or lab
    2. degraded placement: no free room/lab (or no candidate slot left), the
       session is still placed and a conflict is recorded
    3. abandon: the section occupies every slot the teacher could use; the
       remaining sessions of the registration are dropped with a
       "No Available Slots" conflict

    A second pass packs the remaining Lecture slots of every section with
    round-robin repeats of its lecture registrations.
    """

    def __init__(self, config: dict = None, sections=None):
        self.config = config or {}
        self.verbose = self.config.get('verbose', False)
        self.library_subject = self.config.get('library_subject', 'Library')
        self.lab_session_hours = self.config.get('lab_session_hours', 2)
        self.section_names = {
            getattr(s, 'id', None): getattr(s, 'section_name', None) for s in (sections or [])
        }

    # --------------------------------------------------------------------- #
    # Public API
    # --------------------------------------------------------------------- #
    def generate(self, registrations, time_slots, rooms, labs):
        registrations = list(registrations)
        time_slots = list(time_slots)
        if registrations and not time_slots:
            raise SchedulingError("No time slots found. Please configure time slots.")

        context = {
            "time_slots": time_slots,
            "slot_by_id": {slot.id: slot for slot in time_slots},
            "rooms": list(rooms),
            "labs": list(labs),
            "state": TrackingState(),
            "conflicts": ConflictRecorder(),
            "schedule": [],
        }

        ordered = self.order_registrations(registrations)
        if self.verbose:
            print(f"[GEN] registrations={len(ordered)}, slots={len(time_slots)}, "
                  f"rooms={len(context['rooms'])}, labs={len(context['labs'])}")

        for registration in ordered:
            self._place_registration(registration, context)

        primary = len(context["schedule"])
        self._fill_gaps(ordered, context)
        if self.verbose:
            print(f"[GEN] placed {primary} sessions, gap filler added {len(context['schedule']) - primary}, "
                  f"conflicts={len(context['conflicts'])}")

        return context["schedule"], context["conflicts"].records

    @staticmethod
    def order_registrations(registrations):
        # sorted() is stable: equal priorities keep the caller's order
        return sorted(registrations, key=lambda r: -int(getattr(r, 'priority', 1) or 1))

    def sessions_needed(self, subject: Subject) -> int:
        session_length = self.lab_session_hours if subject.is_lab else 1
        hours = subject.hours_per_week if subject.hours_per_week and subject.hours_per_week > 0 else 1
        return max(1, math.ceil(hours / session_length))

    # --------------------------------------------------------------------- #
    # Primary pass
    # --------------------------------------------------------------------- #
    def _place_registration(self, registration, context):
        subject = Subject.from_payload(registration.subject)
        is_library = subject.is_named(self.library_subject)
        remaining = self.sessions_needed(subject)

        while remaining > 0:
            ranked = self.rank_candidates(registration, is_library, context)
            if not ranked:
                fallback = self.fallback_slot(registration, is_library, context)
                if fallback is None:
                    context["conflicts"].record(
                        NO_AVAILABLE_SLOTS,
                        f"No available time slots (even after fallback) for "
                        f"{subject.name} - {self._section_label(registration)}",
                        registration,
                    )
                    break
                ranked = [fallback]

            if subject.is_lab:
                entry = self.assign_lab(registration, subject, ranked, context)
            else:
                entry = self.assign_room(registration, subject, ranked, context)

            context["schedule"].append(entry)
            context["state"].commit(entry, is_library)
            remaining -= 1

    def candidate_slots(self, registration, context):
        requested = list(dict.fromkeys(getattr(registration, 'time_slot_ids', None) or []))
        if not requested:
            return list(context["time_slots"])
        slot_by_id = context["slot_by_id"]
        return [slot_by_id[slot_id] for slot_id in requested if slot_id in slot_by_id]

    def rank_candidates(self, registration, is_library, context):
        state = context["state"]
        section_id = registration.section_id
        teacher_id = registration.teacher_id

        available = []
        for slot in self.candidate_slots(registration, context):
            if state.section_busy(section_id, slot.id):
                continue
            if state.teacher_busy(teacher_id, slot.id):
                continue
            if is_library and state.library_used(section_id, slot.day):
                continue
            available.append(slot)

        # Spread a section's sessions across the week
        available.sort(key=lambda s: (state.day_load(section_id, s.day), time_to_minutes(s.start_time)))
        return available

    def fallback_slot(self, registration, is_library, context):
        """Earliest catalogue slot still free for the section and its teacher."""
        state = context["state"]
        for slot in context["time_slots"]:
            if state.section_busy(registration.section_id, slot.id):
                continue
            if state.teacher_busy(registration.teacher_id, slot.id):
                continue
            if is_library and state.library_used(registration.section_id, slot.day):
                continue
            return slot
        return None

    # --------------------------------------------------------------------- #
    # Resource assignment
    # --------------------------------------------------------------------- #
    def assign_lab(self, registration, subject, ranked, context):
        state = context["state"]
        labs = context["labs"]
        for slot in ranked:
            lab = next((l for l in labs if state.lab_free(l.id, slot.id)), None)
            if lab is not None:
                return self._entry(registration, subject, slot, lab_id=lab.id)

        slot = ranked[0]
        forced_lab = labs[0] if labs else None
        context["conflicts"].record(
            LAB_CONFLICT,
            f"No free lab; forced placement for {subject.name} - {self._section_label(registration)} "
            f"in {self._slot_label(slot)}",
            registration,
        )
        return self._entry(registration, subject, slot, lab_id=forced_lab.id if forced_lab else None)

    def assign_room(self, registration, subject, ranked, context):
        slot = ranked[0]
        room = self.find_free_room(slot, context)
        if room is None:
            context["conflicts"].record(
                ROOM_CONFLICT,
                f"No free room; placed {subject.name} - {self._section_label(registration)} "
                f"without room in {self._slot_label(slot)}",
                registration,
            )
            return self._entry(registration, subject, slot)
        return self._entry(registration, subject, slot, room_id=room.id)

    @staticmethod
    def find_free_room(slot, context):
        state = context["state"]
        return next((r for r in context["rooms"] if state.room_free(r.id, slot.id)), None)

    # --------------------------------------------------------------------- #
    # Gap filling
    # --------------------------------------------------------------------- #
    def _fill_gaps(self, registrations, context):
        state = context["state"]
        lecture_slots = [s for s in context["time_slots"] if getattr(s, 'slot_type', 'Lecture') == 'Lecture']

        by_section: Dict[int, list] = {}
        for registration in registrations:
            if Subject.from_payload(registration.subject).is_lab:
                continue
            by_section.setdefault(registration.section_id, []).append(registration)

        for section_id, lecture_regs in by_section.items():
            cursor = 0
            for slot in lecture_slots:
                if state.section_busy(section_id, slot.id):
                    continue
                picked = None
                for offset in range(len(lecture_regs)):
                    candidate = lecture_regs[(cursor + offset) % len(lecture_regs)]
                    if state.teacher_busy(candidate.teacher_id, slot.id):
                        continue
                    if self._is_library(candidate) and state.library_used(section_id, slot.day):
                        continue
                    picked = candidate
                    cursor += offset + 1
                    break
                if picked is None:
                    if self.verbose:
                        print(f"[GEN] Gap left open for section {section_id} at {self._slot_label(slot)}")
                    continue
                self._place_gap(picked, slot, context)

    def _place_gap(self, registration, slot, context):
        snapshot = Subject.from_payload(registration.subject)
        subject = Subject(snapshot.name, snapshot.code, snapshot.credits, snapshot.hours_per_week, False)
        room = self.find_free_room(slot, context)
        if room is None:
            rooms = context["rooms"]
            room = rooms[0] if rooms else None
            context["conflicts"].record(
                ROOM_CONFLICT,
                f"Forced placement without free room for {subject.name} - "
                f"{self._section_label(registration)} in {self._slot_label(slot)}",
                registration,
            )
        entry = self._entry(registration, subject, slot, room_id=room.id if room else None)
        context["schedule"].append(entry)
        context["state"].commit(entry, subject.is_named(self.library_subject))

    # --------------------------------------------------------------------- #
    # Helpers
    # --------------------------------------------------------------------- #
    def _is_library(self, registration) -> bool:
        return Subject.from_payload(registration.subject).is_named(self.library_subject)

    @staticmethod
    def _entry(registration, subject, slot, room_id=None, lab_id=None):
        return ScheduleEntry(
            day=slot.day,
            time_slot_id=slot.id,
            section_id=registration.section_id,
            subject=subject,
            teacher_id=registration.teacher_id,
            room_id=room_id,
            lab_id=lab_id,
            is_lab=subject.is_lab,
        )

    def _section_label(self, registration):
        name = self.section_names.get(registration.section_id) or getattr(registration, 'section_name', None)
        return name or f"Section {registration.section_id}"

    @staticmethod
    def _slot_label(slot):
        return f"{slot.day} {slot.start_time}-{slot.end_time}"

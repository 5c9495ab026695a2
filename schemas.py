"""
Request payload models for the JSON API.

Every create/update body goes through one of these before it touches the
database; a pydantic ValidationError is turned into a 400 response by the app.
Field names are snake_case; camelCase aliases are accepted as well.
"""
import re
from typing import Any, ClassVar, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from scheduler import time_to_minutes

TIME_PATTERN = r'^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$'
EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')

Day = Literal['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday']
SlotType = Literal['Lecture', 'Lab', 'Tutorial', 'Break']
RoomType = Literal['Classroom', 'Lecture Hall', 'Seminar Room', 'Conference Room']
LabType = Literal['Computer Lab', 'Physics Lab', 'Chemistry Lab', 'Biology Lab', 'Engineering Lab', 'Language Lab']
RegistrationStatus = Literal['Pending', 'Approved', 'Rejected']
TimetableStatus = Literal['Draft', 'Generated', 'Published', 'Archived']


class Payload(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True, loc_by_alias=False,
    )


class SubjectPayload(Payload):
    name: str = Field(min_length=1)
    code: str = Field(min_length=1)
    credits: int = Field(default=0, ge=0)
    hours_per_week: int = Field(ge=1)
    is_lab: bool = False


class TeacherPayload(Payload):
    name: str = Field(min_length=1)
    email: str
    department: str = Field(min_length=1)
    subjects: List[str] = []
    max_hours_per_week: int = Field(default=40, ge=1)
    available_days: List[Day] = []
    available_time_slot_ids: List[int] = []
    is_active: bool = True

    @field_validator('email')
    @classmethod
    def normalize_email(cls, value: str) -> str:
        value = value.strip().lower()
        if not EMAIL_PATTERN.match(value):
            raise ValueError('Valid email is required')
        return value


class RoomPayload(Payload):
    room_number: str = Field(min_length=1)
    room_name: str = Field(min_length=1)
    capacity: int = Field(ge=1)
    room_type: RoomType = 'Classroom'
    floor: int
    building: str = Field(min_length=1)
    facilities: List[str] = []
    is_active: bool = True


class EquipmentItem(Payload):
    name: str
    quantity: int = Field(default=1, ge=0)


class LabPayload(Payload):
    lab_number: str = Field(min_length=1)
    lab_name: str = Field(min_length=1)
    capacity: int = Field(ge=1)
    lab_type: LabType
    floor: int
    building: str = Field(min_length=1)
    equipment: List[EquipmentItem] = []
    software: List[str] = []
    is_active: bool = True


class SectionPayload(Payload):
    section_name: str = Field(min_length=1)
    department: str = Field(min_length=1)
    year: int = Field(ge=1, le=5)
    semester: int = Field(ge=1, le=8)
    strength: int = Field(ge=1)
    subjects: List[SubjectPayload] = []
    class_teacher_id: Optional[int] = None
    is_active: bool = True


class TimeSlotPayload(Payload):
    day: Day
    start_time: str = Field(pattern=TIME_PATTERN)
    end_time: str = Field(pattern=TIME_PATTERN)
    duration: Optional[int] = None
    slot_type: SlotType = 'Lecture'
    is_active: bool = True

    # recomputed from the interval when not given explicitly
    derived_fields: ClassVar[Tuple[str, ...]] = ('duration',)

    @model_validator(mode='after')
    def check_interval(self):
        span = time_to_minutes(self.end_time) - time_to_minutes(self.start_time)
        if span <= 0:
            raise ValueError('End time must be after start time')
        if self.duration is None:
            self.duration = span
        elif self.duration != span:
            raise ValueError(f'Duration {self.duration} does not match the {span} minute interval')
        if not 30 <= self.duration <= 180:
            raise ValueError('Duration must be between 30 and 180 minutes')
        return self


class RegistrationPayload(Payload):
    section_id: int
    subject: SubjectPayload
    teacher_id: int
    room_id: Optional[int] = None
    lab_id: Optional[int] = None
    time_slot_ids: List[int] = Field(min_length=1)
    semester: str = Field(min_length=1)
    academic_year: str = Field(min_length=1)
    status: RegistrationStatus = 'Pending'
    priority: int = Field(default=1, ge=1, le=5)


class GenerateTimetablePayload(Payload):
    name: str = Field(min_length=1)
    semester: str = Field(min_length=1)
    academic_year: str = Field(min_length=1)
    sections: List[int] = Field(min_length=1)


class TimetablePayload(Payload):
    name: str = Field(min_length=1)
    semester: str = Field(min_length=1)
    academic_year: str = Field(min_length=1)
    section_ids: List[int] = []
    schedule: List[Dict[str, Any]] = []
    conflicts: List[Dict[str, Any]] = []
    status: TimetableStatus = 'Draft'


ENTITY_SCHEMAS = {
    'teachers': TeacherPayload,
    'rooms': RoomPayload,
    'labs': LabPayload,
    'sections': SectionPayload,
    'timeslots': TimeSlotPayload,
    'registrations': RegistrationPayload,
    'timetables': TimetablePayload,
}


def validate_payload(schema, payload) -> Dict[str, Any]:
    """Validate a request body, returning storage-ready snake_case fields."""
    return schema.model_validate(payload or {}).model_dump()


def validate_update(schema, current: Dict[str, Any], changes) -> Dict[str, Any]:
    """Validate the merge of a stored document with a partial update."""
    derived = getattr(schema, 'derived_fields', ())
    merged = {k: v for k, v in current.items() if k in schema.model_fields and k not in derived}
    changes = schema.model_validate({**merged, **_snake_keys(schema, changes or {})})
    return changes.model_dump()


def format_errors(exc) -> List[Dict[str, str]]:
    return [
        {'field': '.'.join(str(part) for part in err['loc']) or '__root__', 'message': err['msg']}
        for err in exc.errors()
    ]


def _snake_keys(schema, changes):
    aliases = {field.alias: name for name, field in schema.model_fields.items() if field.alias}
    return {aliases.get(k, k): v for k, v in changes.items()}

"""
Seed Data - replace the catalogue with a small sample department

Creates teachers, rooms, labs, sections, Mon-Fri time slots and a few
Approved registrations so timetable generation works straight away.
"""

import os
from flask import Flask
from models import db, Teacher, Room, Lab, Section, TimeSlot, Registration, Timetable
from schemas import (
    LabPayload,
    RegistrationPayload,
    RoomPayload,
    SectionPayload,
    TeacherPayload,
    TimeSlotPayload,
    validate_payload,
)
from dotenv import load_dotenv

load_dotenv()

SEMESTER = 'Sem I'
ACADEMIC_YEAR = '2025-2026'
WEEKDAYS = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday']

TEACHERS = [
    {'name': 'Dr. John Smith', 'email': 'john.smith@university.edu', 'department': 'Computer Science',
     'subjects': ['Data Structures', 'Algorithms', 'Database Systems'], 'max_hours_per_week': 40,
     'available_days': WEEKDAYS},
    {'name': 'Prof. Sarah Johnson', 'email': 'sarah.johnson@university.edu', 'department': 'Mathematics',
     'subjects': ['Calculus', 'Linear Algebra', 'Statistics'], 'max_hours_per_week': 35,
     'available_days': WEEKDAYS[:4]},
    {'name': 'Dr. Michael Brown', 'email': 'michael.brown@university.edu', 'department': 'Physics',
     'subjects': ['Mechanics', 'Thermodynamics', 'Electromagnetism'], 'max_hours_per_week': 40,
     'available_days': WEEKDAYS},
]

ROOMS = [
    {'room_number': 'CS101', 'room_name': 'Computer Science Room 1', 'capacity': 30, 'room_type': 'Classroom',
     'floor': 1, 'building': 'Computer Science Building', 'facilities': ['Projector', 'Whiteboard']},
    {'room_number': 'CS102', 'room_name': 'Computer Science Room 2', 'capacity': 25, 'room_type': 'Classroom',
     'floor': 1, 'building': 'Computer Science Building', 'facilities': ['Projector', 'Whiteboard']},
    {'room_number': 'MATH201', 'room_name': 'Mathematics Lecture Hall', 'capacity': 50,
     'room_type': 'Lecture Hall', 'floor': 2, 'building': 'Mathematics Building',
     'facilities': ['Projector', 'Blackboard']},
]

LABS = [
    {'lab_number': 'CSL101', 'lab_name': 'Programming Lab', 'capacity': 25, 'lab_type': 'Computer Lab',
     'floor': 1, 'building': 'Computer Science Building',
     'equipment': [{'name': 'Desktop Computers', 'quantity': 25}, {'name': 'Projector', 'quantity': 1}],
     'software': ['Visual Studio Code', 'Python', 'Java', 'MySQL']},
    {'lab_number': 'PHYL101', 'lab_name': 'Physics Laboratory', 'capacity': 20, 'lab_type': 'Physics Lab',
     'floor': 1, 'building': 'Physics Building',
     'equipment': [{'name': 'Oscilloscope', 'quantity': 10}, {'name': 'Multimeter', 'quantity': 20}],
     'software': ['LabVIEW', 'MATLAB']},
]

DATA_STRUCTURES = {'name': 'Data Structures', 'code': 'CS201', 'credits': 4, 'hours_per_week': 3, 'is_lab': False}
DATA_STRUCTURES_LAB = {'name': 'Data Structures Lab', 'code': 'CS201L', 'credits': 1, 'hours_per_week': 2,
                       'is_lab': True}
CALCULUS = {'name': 'Calculus I', 'code': 'MATH101', 'credits': 4, 'hours_per_week': 4, 'is_lab': False}

SECTIONS = [
    {'section_name': 'CS-A', 'department': 'Computer Science', 'year': 2, 'semester': 3, 'strength': 30,
     'subjects': [DATA_STRUCTURES, DATA_STRUCTURES_LAB]},
    {'section_name': 'MATH-A', 'department': 'Mathematics', 'year': 1, 'semester': 1, 'strength': 40,
     'subjects': [CALCULUS]},
]

LECTURE_TIMES = [('09:00', '10:00'), ('10:00', '11:00'), ('11:00', '12:00')]
LAB_DAYS = ['Monday', 'Tuesday']


def sample_time_slots():
    slots = []
    for day in WEEKDAYS:
        for start, end in LECTURE_TIMES:
            slots.append({'day': day, 'start_time': start, 'end_time': end, 'slot_type': 'Lecture'})
        if day in LAB_DAYS:
            slots.append({'day': day, 'start_time': '14:00', 'end_time': '16:00', 'slot_type': 'Lab'})
    return slots


def insert_all(model_cls, schema, rows):
    objs = [model_cls(**validate_payload(schema, row)) for row in rows]
    for obj in objs:
        db.session.add(obj)
    db.session.commit()
    print(f"Inserted {len(objs)} {model_cls.__name__.lower()} documents")
    return objs


def seed():
    for model_cls in (Teacher, Room, Lab, Section, TimeSlot, Registration, Timetable):
        model_cls.query.delete()
    print("Cleared existing data")

    teachers = insert_all(Teacher, TeacherPayload, TEACHERS)
    insert_all(Room, RoomPayload, ROOMS)
    insert_all(Lab, LabPayload, LABS)
    slots = insert_all(TimeSlot, TimeSlotPayload, sample_time_slots())

    sections = insert_all(Section, SectionPayload, [
        {**section, 'class_teacher_id': teachers[i % len(teachers)].id} for i, section in enumerate(SECTIONS)
    ])
    by_name = {s.section_name: s for s in sections}

    def slot_ids(start, end):
        return [s.id for s in slots if s.start_time == start and s.end_time == end]

    insert_all(Registration, RegistrationPayload, [
        {'section_id': by_name['CS-A'].id, 'subject': DATA_STRUCTURES, 'teacher_id': teachers[0].id,
         'time_slot_ids': slot_ids('09:00', '10:00'), 'semester': SEMESTER, 'academic_year': ACADEMIC_YEAR,
         'status': 'Approved'},
        {'section_id': by_name['CS-A'].id, 'subject': DATA_STRUCTURES_LAB, 'teacher_id': teachers[0].id,
         'time_slot_ids': slot_ids('14:00', '16:00'), 'semester': SEMESTER, 'academic_year': ACADEMIC_YEAR,
         'status': 'Approved'},
        {'section_id': by_name['MATH-A'].id, 'subject': CALCULUS, 'teacher_id': teachers[1].id,
         'time_slot_ids': slot_ids('10:00', '11:00'), 'semester': SEMESTER, 'academic_year': ACADEMIC_YEAR,
         'status': 'Approved'},
    ])

    print("\nDatabase seeded successfully!")
    print(f"Generate with semester '{SEMESTER}', academic year '{ACADEMIC_YEAR}', "
          f"sections {[s.id for s in sections]}")


if __name__ == '__main__':
    app = Flask(__name__)
    app.config['MONGO_URI'] = os.getenv('MONGO_URI')
    app.config['MONGO_DBNAME'] = os.getenv('MONGO_DBNAME', 'timetable')
    db.init_app(app)

    with app.app_context():
        seed()

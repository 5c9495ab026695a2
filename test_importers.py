"""
Unit tests for bulk import parsing (spreadsheet rows, timetable grids, department JSON)
"""
import unittest

from importers import (
    parse_bool,
    parse_cell_value,
    parse_int,
    parse_time_label,
    pick_teacher_code,
    registration_key,
    row_to_registration,
    row_to_teacher,
    row_to_time_slot,
    scan_timetable_grid,
    section_name_for,
    split_list,
    DEFAULT_GRID_SECTIONS,
    FIXED_SLOTS,
)
from schemas import TeacherPayload, TimeSlotPayload, validate_payload


class TestValueParsing(unittest.TestCase):

    def test_parse_int(self):
        self.assertEqual(parse_int('3'), 3)
        self.assertEqual(parse_int('3.0'), 3)
        self.assertEqual(parse_int('', 7), 7)
        self.assertEqual(parse_int('abc', 5), 5)

    def test_parse_bool(self):
        self.assertTrue(parse_bool('Yes'))
        self.assertTrue(parse_bool('LAB'))
        self.assertFalse(parse_bool('no'))
        self.assertTrue(parse_bool('', default=True))

    def test_split_list(self):
        self.assertEqual(split_list('Python; Java, SQL'), ['Python', 'Java', 'SQL'])
        self.assertEqual(split_list(''), [])
        self.assertEqual(split_list(['a']), ['a'])


class TestRowParsers(unittest.TestCase):

    def setUp(self):
        self.lookups = {
            'sections': {'cs-a': 1},
            'teachers': {'ada@example.edu': 2, 'dr. ada': 2},
            'time_slot_ids': [1, 2, 3],
        }

    def registration_row(self, **overrides):
        row = {
            'section': 'CS-A',
            'teacher': 'Ada@Example.edu',
            'subject_name': 'Data Structures',
            'subject_code': 'CS201',
            'hours_per_week': '3',
            'semester': 'Sem I',
            'academic_year': '2025-2026',
            'status': 'approved',
            'time_slots': '',
        }
        row.update(overrides)
        return row

    def test_registration_row_resolves_references(self):
        data = row_to_registration(self.registration_row(), self.lookups)
        self.assertEqual(data['section_id'], 1)
        self.assertEqual(data['teacher_id'], 2)
        self.assertEqual(data['status'], 'Approved')
        self.assertEqual(data['subject']['hours_per_week'], 3)
        self.assertEqual(data['time_slot_ids'], [1, 2, 3])

    def test_registration_row_explicit_slots(self):
        data = row_to_registration(self.registration_row(time_slots='2;3'), self.lookups)
        self.assertEqual(data['time_slot_ids'], [2, 3])

    def test_unknown_section_raises(self):
        with self.assertRaises(ValueError):
            row_to_registration(self.registration_row(section='ZZ'), self.lookups)

    def test_unknown_teacher_raises(self):
        with self.assertRaises(ValueError):
            row_to_registration(self.registration_row(teacher='nobody'), self.lookups)

    def test_registration_key_ignores_case(self):
        first = row_to_registration(self.registration_row(), self.lookups)
        second = row_to_registration(self.registration_row(subject_code='cs201', semester='SEM I'), self.lookups)
        self.assertEqual(registration_key(first), registration_key(second))

    def test_time_slot_row_is_normalized(self):
        row = {'day': 'monday ', 'start_time': '14:00', 'end_time': '16:00', 'slot_type': 'lab'}
        data = validate_payload(TimeSlotPayload, row_to_time_slot(row, {}))
        self.assertEqual(data['day'], 'Monday')
        self.assertEqual(data['slot_type'], 'Lab')
        self.assertEqual(data['duration'], 120)

    def test_teacher_row_defaults(self):
        data = validate_payload(TeacherPayload, row_to_teacher({'name': 'Dr. Ada', 'email': 'ADA@example.edu'}, {}))
        self.assertEqual(data['email'], 'ada@example.edu')
        self.assertEqual(data['department'], 'TBD')
        self.assertEqual(len(data['available_days']), 5)


class TestTimetableGrid(unittest.TestCase):

    def test_parse_time_label(self):
        self.assertEqual(parse_time_label('09:00 - 10:00'),
                         {'start_time': '09:00', 'end_time': '10:00', 'duration': 60})
        self.assertEqual(parse_time_label('9:00 – 10:30')['duration'], 90)
        self.assertIsNone(parse_time_label('Monday'))
        self.assertIsNone(parse_time_label(None))

    def test_parse_cell_value(self):
        self.assertEqual(parse_cell_value('DBMS(NMN)-232'),
                         {'subject_name': 'DBMS', 'teacher_code': 'NMN', 'room_code': '232'})
        self.assertEqual(parse_cell_value('VLSI(MSS)-239-C')['room_code'], '239-C')
        self.assertEqual(parse_cell_value('library')['subject_name'], 'Library')
        self.assertEqual(parse_cell_value('Mentoring'),
                         {'subject_name': 'Mentoring', 'teacher_code': None, 'room_code': None})
        self.assertIsNone(parse_cell_value('  '))

    def test_scan_grid(self):
        rows = [
            ['Department Timetable', None, None, None],
            ['Day', 'Class', '09:00 - 10:00', '10:00 - 11:00'],
            ['Monday', 'TE(A)', 'DBMS(NMN)-232', 'Library'],
            [None, 'CS-X', 'CN(ABC)-233', None],
        ]
        scan = scan_timetable_grid(rows)

        self.assertEqual([c['index'] for c in scan['time_columns']], [2, 3])
        self.assertEqual(scan['teacher_codes'], ['NMN', 'ABC'])
        self.assertEqual(scan['room_codes'], ['232', 'Library', '233'])
        self.assertEqual(scan['sections'], DEFAULT_GRID_SECTIONS + ['CS-X'])

    def test_scan_grid_without_header(self):
        with self.assertRaises(ValueError):
            scan_timetable_grid([['Day', 'Class'], ['Monday', 'TE(A)']])


class TestDepartmentJson(unittest.TestCase):

    def test_section_names(self):
        self.assertEqual(section_name_for('TE', 'A'), 'TE(A)')

    def test_fixed_slots_include_lab_block(self):
        lab_slots = [s for s in FIXED_SLOTS if s['slot_type'] == 'Lab']
        self.assertEqual(lab_slots, [{'start_time': '14:00', 'end_time': '16:00', 'duration': 120,
                                      'slot_type': 'Lab'}])

    def test_pick_teacher_code(self):
        teachers = {
            'T1': {'subjects': ['Maths']},
            'T2': {'subjects': ['Data Structures']},
            'T3': {'subjects': ['Computer Networks']},
        }
        division = {'teachers': ['T1', 'T2']}

        self.assertEqual(pick_teacher_code(division, teachers, 'Data Structures'), 'T2')
        self.assertEqual(pick_teacher_code(division, teachers, 'Networks'), 'T3')
        self.assertIsNone(pick_teacher_code(division, teachers, 'Art'))


if __name__ == '__main__':
    unittest.main()

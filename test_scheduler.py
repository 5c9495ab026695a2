"""
Unit tests for the greedy timetable generator
Covers placement order, resource contention, library spreading and gap filling
"""
import unittest
from types import SimpleNamespace

from scheduler import (
    LAB_CONFLICT,
    NO_AVAILABLE_SLOTS,
    ROOM_CONFLICT,
    ConflictRecorder,
    SchedulingError,
    Subject,
    TimetableGenerator,
    sort_time_slots,
    time_to_minutes,
    minutes_to_time,
)


def make_slot(slot_id, day, start, end, slot_type='Lecture'):
    return SimpleNamespace(id=slot_id, day=day, start_time=start, end_time=end, slot_type=slot_type)


def make_registration(reg_id, section_id, teacher_id, code, hours, name=None,
                      is_lab=False, priority=1, slot_ids=None):
    return SimpleNamespace(
        id=reg_id,
        section_id=section_id,
        teacher_id=teacher_id,
        subject={'name': name or code, 'code': code, 'credits': 3, 'hours_per_week': hours, 'is_lab': is_lab},
        priority=priority,
        time_slot_ids=list(slot_ids or []),
    )


def room(room_id):
    return SimpleNamespace(id=room_id, room_number=f'R{room_id}')


def lab(lab_id):
    return SimpleNamespace(id=lab_id, lab_number=f'L{lab_id}')


MON_09 = make_slot(1, 'Monday', '09:00', '10:00')
MON_10 = make_slot(2, 'Monday', '10:00', '11:00')
TUE_09 = make_slot(3, 'Tuesday', '09:00', '10:00')
WED_09 = make_slot(4, 'Wednesday', '09:00', '10:00')
MON_LAB = make_slot(5, 'Monday', '14:00', '16:00', slot_type='Lab')


class TestTimeHelpers(unittest.TestCase):

    def test_time_conversion(self):
        self.assertEqual(time_to_minutes('09:30'), 570)
        self.assertEqual(time_to_minutes('9:30'), 570)
        self.assertEqual(minutes_to_time(570), '09:30')

    def test_sort_time_slots_by_weekday_then_start(self):
        slots = [
            make_slot(1, 'Tuesday', '09:00', '10:00'),
            make_slot(2, 'Monday', '10:00', '11:00'),
            make_slot(3, 'Monday', '9:30', '10:00'),
            make_slot(4, 'Friday', '08:00', '09:00'),
        ]
        ordered = sort_time_slots(slots)
        self.assertEqual([s.id for s in ordered], [3, 2, 1, 4])


class TestSessionsNeeded(unittest.TestCase):

    def setUp(self):
        self.generator = TimetableGenerator()

    def test_lecture_hours_map_to_sessions(self):
        self.assertEqual(self.generator.sessions_needed(Subject('Maths', 'M1', hours_per_week=3)), 3)

    def test_lab_sessions_are_two_hours(self):
        self.assertEqual(self.generator.sessions_needed(Subject('DS Lab', 'L1', hours_per_week=2, is_lab=True)), 1)
        self.assertEqual(self.generator.sessions_needed(Subject('DS Lab', 'L1', hours_per_week=3, is_lab=True)), 2)

    def test_missing_hours_count_as_one(self):
        subject = Subject.from_payload({'name': 'Seminar', 'code': 'S1', 'hours_per_week': 0})
        self.assertEqual(self.generator.sessions_needed(subject), 1)


class TestPrimaryPass(unittest.TestCase):

    def test_sessions_spread_across_days(self):
        """Three weekly lectures land on three different days"""
        reg = make_registration(1, 1, 10, 'CS201', 3, slot_ids=[1, 2, 3, 4])
        schedule, conflicts = TimetableGenerator().generate([reg], [MON_09, MON_10, TUE_09, WED_09], [room(1)], [])

        primary = schedule[:3]
        self.assertEqual([e.day for e in primary], ['Monday', 'Tuesday', 'Wednesday'])
        self.assertEqual(conflicts, [])

    def test_five_candidates_over_three_days(self):
        tue_10 = make_slot(8, 'Tuesday', '10:00', '11:00')
        reg = make_registration(1, 1, 10, 'CS201', 3, slot_ids=[1, 2, 3, 8, 4])
        slots = [MON_09, MON_10, TUE_09, tue_10, WED_09]
        schedule, conflicts = TimetableGenerator().generate([reg], slots, [room(1)], [])

        self.assertEqual([e.time_slot_id for e in schedule[:3]], [1, 3, 4])
        self.assertEqual(conflicts, [])

    def test_higher_priority_placed_first(self):
        low = make_registration(1, 1, 10, 'LOW', 1, priority=1)
        high = make_registration(2, 1, 11, 'HIGH', 1, priority=5)
        schedule, conflicts = TimetableGenerator().generate([low, high], [MON_09], [room(1)], [])

        self.assertEqual(len(schedule), 1)
        self.assertEqual(schedule[0].subject.code, 'HIGH')
        self.assertEqual(len(conflicts), 1)
        self.assertEqual(conflicts[0].type, NO_AVAILABLE_SLOTS)
        self.assertEqual(conflicts[0].affected_items, [1])

    def test_equal_priority_keeps_input_order(self):
        first = make_registration(7, 1, 10, 'FIRST', 1)
        second = make_registration(3, 1, 11, 'SECOND', 1)
        schedule, _ = TimetableGenerator().generate([first, second], [MON_09, MON_10], [room(1)], [])
        self.assertEqual([e.subject.code for e in schedule], ['FIRST', 'SECOND'])

    def test_no_available_slots_recorded_once(self):
        reg = make_registration(1, 1, 10, 'CS201', 3)
        schedule, conflicts = TimetableGenerator().generate([reg], [MON_09, MON_10], [room(1)], [])

        self.assertEqual(len(schedule), 2)
        self.assertEqual([c.type for c in conflicts], [NO_AVAILABLE_SLOTS])

    def test_teacher_never_double_booked(self):
        """A busy teacher pushes the second section to another slot"""
        reg_a = make_registration(1, 1, 10, 'A', 1, slot_ids=[1])
        reg_b = make_registration(2, 2, 10, 'B', 1, slot_ids=[1])
        schedule, conflicts = TimetableGenerator().generate([reg_a, reg_b], [MON_09, MON_10], [room(1)], [])

        teacher_slots = [(e.teacher_id, e.time_slot_id) for e in schedule]
        self.assertEqual(len(teacher_slots), len(set(teacher_slots)))
        self.assertEqual({e.section_id: e.time_slot_id for e in schedule}, {1: 1, 2: 2})
        self.assertEqual(conflicts, [])

    def test_room_conflict_places_without_room(self):
        reg_a = make_registration(1, 1, 10, 'A', 1)
        reg_b = make_registration(2, 2, 11, 'B', 1)
        schedule, conflicts = TimetableGenerator().generate([reg_a, reg_b], [MON_09], [room(1)], [])

        self.assertEqual([e.room_id for e in schedule], [1, None])
        self.assertEqual(len(conflicts), 1)
        self.assertEqual(conflicts[0].type, ROOM_CONFLICT)
        self.assertEqual(conflicts[0].affected_items, [2])

    def test_unknown_requested_slots_fall_back_to_catalogue(self):
        reg = make_registration(1, 1, 10, 'A', 1, slot_ids=[99])
        schedule, conflicts = TimetableGenerator().generate([reg], [TUE_09], [room(1)], [])
        self.assertEqual(schedule[0].time_slot_id, 3)
        self.assertEqual(conflicts, [])


class TestLabs(unittest.TestCase):

    def test_lab_session_gets_lab(self):
        reg = make_registration(1, 1, 10, 'CS201L', 2, is_lab=True, slot_ids=[5])
        schedule, conflicts = TimetableGenerator().generate([reg], [MON_LAB], [room(1)], [lab(1)])

        self.assertEqual(len(schedule), 1)
        entry = schedule[0]
        self.assertTrue(entry.is_lab)
        self.assertEqual(entry.lab_id, 1)
        self.assertIsNone(entry.room_id)
        self.assertEqual(conflicts, [])

    def test_lab_conflict_forces_first_lab(self):
        reg_a = make_registration(1, 1, 10, 'LA', 2, is_lab=True, slot_ids=[5])
        reg_b = make_registration(2, 2, 11, 'LB', 2, is_lab=True, slot_ids=[5])
        schedule, conflicts = TimetableGenerator().generate([reg_a, reg_b], [MON_LAB], [], [lab(1)])

        self.assertEqual([e.lab_id for e in schedule], [1, 1])
        self.assertEqual([c.type for c in conflicts], [LAB_CONFLICT])
        self.assertEqual(conflicts[0].affected_items, [2])

    def test_second_lab_used_when_first_busy(self):
        reg_a = make_registration(1, 1, 10, 'LA', 2, is_lab=True, slot_ids=[5])
        reg_b = make_registration(2, 2, 11, 'LB', 2, is_lab=True, slot_ids=[5])
        schedule, conflicts = TimetableGenerator().generate([reg_a, reg_b], [MON_LAB], [], [lab(1), lab(2)])

        self.assertEqual([e.lab_id for e in schedule], [1, 2])
        self.assertEqual(conflicts, [])

    def test_same_section_labs_never_share_a_slot(self):
        reg_a = make_registration(1, 1, 10, 'LA', 2, is_lab=True, slot_ids=[5])
        reg_b = make_registration(2, 1, 11, 'LB', 2, is_lab=True, slot_ids=[5])
        schedule, conflicts = TimetableGenerator().generate([reg_a, reg_b], [MON_LAB, MON_09], [], [lab(1)])

        self.assertEqual([(e.time_slot_id, e.lab_id) for e in schedule], [(5, 1), (1, 1)])
        self.assertEqual(conflicts, [])


class TestLibrary(unittest.TestCase):

    def test_library_at_most_once_per_day(self):
        reg = make_registration(1, 1, 20, 'LIB', 2, name='Library', slot_ids=[1, 2, 3])
        schedule, conflicts = TimetableGenerator().generate([reg], [MON_09, MON_10, TUE_09], [room(1)], [])

        self.assertEqual([e.day for e in schedule], ['Monday', 'Tuesday'])
        self.assertEqual(conflicts, [])

    def test_library_name_is_case_insensitive(self):
        reg = make_registration(1, 1, 20, 'LIB', 2, name=' library ', slot_ids=[1, 2])
        schedule, conflicts = TimetableGenerator().generate([reg], [MON_09, MON_10], [room(1)], [])

        self.assertEqual(len(schedule), 1)
        self.assertEqual([c.type for c in conflicts], [NO_AVAILABLE_SLOTS])


class TestGapFiller(unittest.TestCase):

    def test_round_robin_fills_remaining_lecture_slots(self):
        mon_11 = make_slot(6, 'Monday', '11:00', '12:00')
        mon_12 = make_slot(7, 'Monday', '12:00', '13:00')
        reg_a = make_registration(1, 1, 10, 'A', 1)
        reg_b = make_registration(2, 1, 11, 'B', 1)
        slots = [MON_09, MON_10, mon_11, mon_12, MON_LAB]
        schedule, conflicts = TimetableGenerator().generate([reg_a, reg_b], slots, [room(1)], [])

        self.assertEqual([(e.time_slot_id, e.subject.code) for e in schedule],
                         [(1, 'A'), (2, 'B'), (6, 'A'), (7, 'B')])
        self.assertNotIn(5, [e.time_slot_id for e in schedule])
        self.assertEqual(conflicts, [])

    def test_gap_entries_are_lectures_without_hours(self):
        reg = make_registration(1, 1, 10, 'A', 1)
        schedule, _ = TimetableGenerator().generate([reg], [MON_09, MON_10], [room(1)], [])

        self.assertEqual(len(schedule), 2)
        gap = schedule[1].to_dict()
        self.assertFalse(gap['is_lab'])
        self.assertNotIn('hours_per_week', gap['subject'])

    def test_gap_without_free_room_forces_first_room(self):
        reg_a = make_registration(1, 1, 10, 'A', 1, slot_ids=[1])
        reg_b = make_registration(2, 2, 11, 'B', 1, slot_ids=[2])
        schedule, conflicts = TimetableGenerator().generate([reg_a, reg_b], [MON_09, MON_10], [room(1)], [])

        self.assertEqual(len(schedule), 4)
        self.assertEqual([c.type for c in conflicts], [ROOM_CONFLICT, ROOM_CONFLICT])
        self.assertTrue(all(c.description.startswith('Forced placement') for c in conflicts))
        self.assertTrue(all(e.room_id == 1 for e in schedule))

    def test_sections_never_double_booked(self):
        regs = [
            make_registration(1, 1, 10, 'A', 2),
            make_registration(2, 1, 11, 'B', 3),
            make_registration(3, 2, 10, 'C', 2),
            make_registration(4, 2, 12, 'D', 2, is_lab=True),
        ]
        slots = [MON_09, MON_10, TUE_09, WED_09, MON_LAB]
        schedule, _ = TimetableGenerator().generate(regs, slots, [room(1), room(2)], [lab(1)])

        section_slots = [(e.section_id, e.time_slot_id) for e in schedule]
        teacher_slots = [(e.teacher_id, e.time_slot_id) for e in schedule]
        self.assertEqual(len(section_slots), len(set(section_slots)))
        self.assertEqual(len(teacher_slots), len(set(teacher_slots)))


class TestGenerator(unittest.TestCase):

    def test_empty_catalogue_raises(self):
        reg = make_registration(1, 1, 10, 'A', 1)
        with self.assertRaises(SchedulingError):
            TimetableGenerator().generate([reg], [], [room(1)], [])

    def test_no_registrations_gives_empty_result(self):
        self.assertEqual(TimetableGenerator().generate([], [], [], []), ([], []))

    def test_generation_is_deterministic(self):
        regs = [
            make_registration(1, 1, 10, 'A', 3, priority=2),
            make_registration(2, 1, 11, 'B', 2),
            make_registration(3, 2, 10, 'C', 2, is_lab=True),
        ]
        slots = [MON_09, MON_10, TUE_09, WED_09, MON_LAB]

        def run():
            schedule, conflicts = TimetableGenerator().generate(regs, slots, [room(1)], [lab(1)])
            return [e.to_dict() for e in schedule], [c.to_dict() for c in conflicts]

        self.assertEqual(run(), run())

    def test_conflict_descriptions_use_section_names(self):
        sections = [SimpleNamespace(id=1, section_name='CS-A'), SimpleNamespace(id=2, section_name='CS-B')]
        reg_a = make_registration(1, 1, 10, 'A', 1)
        reg_b = make_registration(2, 2, 11, 'B', 1)
        _, conflicts = TimetableGenerator(sections=sections).generate([reg_a, reg_b], [MON_09], [room(1)], [])

        self.assertIn('CS-B', conflicts[0].description)
        self.assertIn('Monday 09:00-10:00', conflicts[0].description)

    def test_recorder_rejects_unknown_type(self):
        with self.assertRaises(ValueError):
            ConflictRecorder().record('Parking Conflict', 'nope', SimpleNamespace(id=1))


if __name__ == '__main__':
    unittest.main()

"""
tests/test_attendance_manager.py

Attendance upserts, bulk marking and absence alerts.
"""
import pytest

from exam_control.modules import models
from exam_control.modules.attendance_manager import whatsapp_link
from exam_control.modules.errors import ConfirmationRequired
from exam_control.modules.models import AttendanceStatus


def test_marking_twice_keeps_one_record(db, mirror, attendance, teacher):
    attendance.set_attendance(teacher, 's1', 'e1', present=False)
    attendance.set_attendance(teacher, 's1', 'e1', present=True)

    assert db.count(models.ATTENDANCE) == 1
    assert attendance.get_record('s1', 'e1')['status'] == 'PRESENT'
    assert len([a for a in mirror.attendance if a.student_id == 's1']) == 1


def test_toggle_starts_with_absent(attendance, teacher):
    assert attendance.toggle_attendance(teacher, 's2', 'e1').status == AttendanceStatus.ABSENT
    assert attendance.toggle_attendance(teacher, 's2', 'e1').status == AttendanceStatus.PRESENT


def test_mark_all_present_keeps_existing_records(db, mirror, attendance, counselor):
    attendance.set_attendance(counselor, 's1', 'e1', present=False)
    roster = attendance.exam_roster('e1')

    result = attendance.mark_all_present(counselor, 'e1', roster['candidates'], confirmed=True)

    assert result['created'] == 4
    assert attendance.get_record('s1', 'e1')['status'] == 'ABSENT'
    assert db.count(models.ATTENDANCE) == 5

    again = attendance.mark_all_present(counselor, 'e1', roster['candidates'], confirmed=True)
    assert again['created'] == 0
    assert db.count(models.ATTENDANCE) == 5


def test_mark_all_present_only_touches_listed_students(db, mirror, attendance, teacher):
    listed = [mirror.get_student('s3'), mirror.get_student('s4')]
    attendance.mark_all_present(teacher, 'e2', listed, confirmed=True)
    assert {a.student_id for a in mirror.attendance} == {'s3', 's4'}


def test_mark_all_present_needs_confirmation(db, mirror, attendance, teacher):
    with pytest.raises(ConfirmationRequired):
        attendance.mark_all_present(teacher, 'e1', mirror.students)
    assert db.count(models.ATTENDANCE) == 0


def test_roster_search_narrows_shown_students(attendance):
    roster = attendance.exam_roster('e1', 'سلطان')
    assert roster['shown'] == 1
    assert roster['total'] == 5
    assert roster['students'][0]['status'] is None
    assert roster['committee_name'] == 'لجنة (1) - قاعة المتنبي'


def test_roster_falls_back_to_first_exam(attendance):
    assert attendance.exam_roster(None)['exam']['id'] == 'e1'


def test_absence_alerts_link_to_parent(attendance, teacher):
    attendance.set_attendance(teacher, 's1', 'e1', present=False)
    attendance.set_attendance(teacher, 's2', 'e1', present=True)
    # record pointing to a student that no longer exists
    attendance.set_attendance(teacher, 'ghost', 'e1', present=False)

    alerts = attendance.absence_alerts()
    assert len(alerts) == 1
    assert alerts[0]['student_name'] == 'سلطان القحطاني'
    assert alerts[0]['call_link'] == 'tel:0500000001'
    assert alerts[0]['whatsapp_link'] == 'https://wa.me/966500000001'


def test_whatsapp_link_without_leading_zero():
    assert whatsapp_link('512345678') == 'https://wa.me/966512345678'

"""
tests/test_rosters.py

Student roster import and deletion, committees and proctor distribution.
"""
from datetime import datetime

import pytest

from conftest import workbook_bytes
from exam_control.modules import models
from exam_control.modules.errors import ConfirmationRequired, ImportParseFailure, PermissionDenied
from exam_control.modules.roster_importer import (
    clean_cell, excel_date, parse_proctor_rows, parse_student_rows, read_workbook
)
from exam_control.modules.student_manager import AUTO_COMMITTEE_LOCATION

COMMITTEE_ONE = 'لجنة (1) - قاعة المتنبي'


def test_excel_serial_dates():
    assert excel_date(45000) == '2023-03-15'
    assert excel_date(45219.0) == '2023-10-20'
    assert excel_date(datetime(2023, 10, 20, 0, 0)) == '2023-10-20'
    assert excel_date('2023-10-20') == '2023-10-20'
    assert excel_date(None) is None


def test_clean_cell_drops_float_suffix():
    assert clean_cell(101.0) == '101'
    assert clean_cell('  أ  ') == 'أ'
    assert clean_cell('') is None


def test_student_rows_get_placeholders():
    rows = [{'اسم الطالب': None, 'Seat Number': 7, 'رقم الهوية': None}]
    student = parse_student_rows(rows)[0]
    assert student['name'] == 'غير محدد'
    assert student['grade'] == 'عام'
    assert student['class'] == 'عام'
    assert student['seatNumber'] == '7'
    assert student['nationalId']


def test_incomplete_proctor_rows_are_dropped():
    rows = [
        {'اسم المراقب': 'أ. فهد العتيبي', 'اللجنة': COMMITTEE_ONE, 'المادة': 'الرياضيات', 'التاريخ': 45219},
        {'اسم المراقب': 'أ. فهد العتيبي', 'اللجنة': COMMITTEE_ONE, 'المادة': None, 'التاريخ': 45219},
    ]
    assert parse_proctor_rows(rows) == [{
        'teacherName': 'أ. فهد العتيبي',
        'committeeName': COMMITTEE_ONE,
        'subject': 'الرياضيات',
        'date': '2023-10-20'
    }]


def test_non_excel_file_is_rejected():
    with pytest.raises(ImportParseFailure):
        read_workbook(b'name,grade', 'roster.csv')


def test_corrupt_workbook_is_rejected():
    with pytest.raises(ImportParseFailure):
        read_workbook(b'not a workbook', 'roster.xlsx')


def test_student_import_creates_missing_committees(db, mirror, students, admin):
    content = workbook_bytes([
        {'اسم الطالب': 'نواف الشهري', 'رقم الجلوس': 101, 'اللجنة': COMMITTEE_ONE,
         'الصف': 'الأول ثانوي', 'الفصل': 'أ', 'جوال ولي الأمر': '0511111111'},
        {'اسم الطالب': 'بندر الزهراني', 'رقم الجلوس': 102, 'اللجنة': 'لجنة (9)',
         'الصف': 'الأول ثانوي', 'الفصل': 'ب', 'جوال ولي الأمر': '0522222222'},
        {'اسم الطالب': 'راكان الشمري', 'رقم الجلوس': 103, 'اللجنة': 'لجنة (9)',
         'الصف': 'الأول ثانوي', 'الفصل': 'ب', 'جوال ولي الأمر': '0533333333'},
    ])

    result = students.import_students_from_excel(admin, content, 'roster.xlsx')

    assert result['imported'] == 3
    assert result['committees_created'] == 1
    assert db.count(models.STUDENTS) == 8
    created = [c for c in mirror.committees if c.name == 'لجنة (9)']
    assert len(created) == 1
    assert created[0].location == AUTO_COMMITTEE_LOCATION
    imported = [s for s in mirror.students if s.name == 'نواف الشهري'][0]
    assert imported.seat_number == '101'
    assert imported.committee == COMMITTEE_ONE


def test_student_import_is_admin_only(students, teacher):
    with pytest.raises(PermissionDenied):
        students.import_students(teacher, [{'name': 'x'}])


def test_delete_student_needs_confirmation(db, mirror, students, admin):
    with pytest.raises(ConfirmationRequired):
        students.delete_student(admin, 's1')
    students.delete_student(admin, 's1', confirmed=True)
    assert mirror.get_student('s1') is None
    assert db.count(models.STUDENTS) == 4


def test_delete_all_requires_typed_phrase(db, students, admin):
    with pytest.raises(ConfirmationRequired):
        students.delete_all_students(admin, confirmed=True, confirmation_phrase='نعم')
    with pytest.raises(ConfirmationRequired):
        students.delete_all_students(admin, confirmation_phrase='حذف')
    assert db.count(models.STUDENTS) == 5


def test_delete_all_six_hundred_students_in_two_batches(db, mirror, students, admin):
    extra = [
        ('set', models.STUDENTS, f'bulk{i}', {'name': f'طالب {i}', 'grade': 'عام'})
        for i in range(595)
    ]
    db.commit_in_chunks(extra)
    assert db.count(models.STUDENTS) == 600

    result = students.delete_all_students(admin, confirmed=True, confirmation_phrase='حذف')

    assert result['deleted'] == 600
    assert result['batches'] == 2
    assert db.count(models.STUDENTS) == 0
    assert mirror.students == []


def test_create_and_rename_committee(db, mirror, students, committees, admin):
    committee = committees.create_committee(admin, 'لجنة (3)', 'الدور الثالث')
    students.import_students(admin, [{'name': 'سعد', 'grade': 'عام', 'class': 'أ', 'committee': 'لجنة (3)'}])

    committees.rename_committee(admin, committee.id, 'لجنة (3) - المكتبة')

    assert db.get_document(models.COMMITTEES, committee.id)['name'] == 'لجنة (3) - المكتبة'
    moved = [s for s in mirror.students if s.name == 'سعد'][0]
    assert moved.committee == 'لجنة (3) - المكتبة'
    assert db.get_document(models.STUDENTS, moved.id)['committee'] == 'لجنة (3) - المكتبة'


def test_committee_overview_filtered_by_proctor(envelopes, committees, admin):
    envelopes.assign_proctor(admin, 'e3', 'u3')
    overview = committees.committee_overview('u3')
    assert [o['committee']['id'] for o in overview] == ['c2']
    assert len(committees.committee_overview()) == 2


def test_proctor_import_counts_rows(db, mirror, committees, admin):
    assignments = [
        {'teacherName': 'أ. فهد العتيبي', 'committeeName': COMMITTEE_ONE,
         'subject': 'الرياضيات', 'date': '2023-10-20'},
        {'teacherName': 'مراقب غير موجود', 'committeeName': COMMITTEE_ONE,
         'subject': 'الفيزياء', 'date': '2023-10-22'},
        {'teacherName': 'أ. خالد الدوسري', 'committeeName': COMMITTEE_ONE,
         'subject': 'الكيمياء', 'date': '2023-10-22'},
    ]

    result = committees.import_proctor_assignments(admin, assignments, confirmed=True)

    assert result['success']
    assert result['updated'] == 1
    assert result['not_found'] == 2
    assert db.get_document(models.ENVELOPES, 'e1')['proctorId'] == 'u2'
    assert mirror.get_envelope('e1').proctor_name == 'أ. فهد العتيبي'


def test_proctor_import_with_no_match_writes_nothing(db, committees, admin):
    before = db.commit_count
    result = committees.import_proctor_assignments(admin, [
        {'teacherName': 'مجهول', 'committeeName': 'لجنة مجهولة', 'subject': 'x', 'date': '2023-01-01'}
    ], confirmed=True)
    assert not result['success']
    assert result['not_found'] == 1
    assert db.commit_count == before


def test_proctor_import_from_workbook(db, committees, admin):
    content = workbook_bytes([
        {'اسم المراقب': 'أ. خالد الدوسري', 'اللجنة': 'لجنة (2) - قاعة الخوارزمي',
         'المادة': 'الرياضيات', 'التاريخ': datetime(2023, 10, 20)},
    ])
    with pytest.raises(ConfirmationRequired):
        committees.import_proctors_from_excel(admin, content, 'proctors.xlsx')

    result = committees.import_proctors_from_excel(admin, content, 'proctors.xlsx', confirmed=True)
    assert result['updated'] == 1
    assert db.get_document(models.ENVELOPES, 'e3')['proctorName'] == 'أ. خالد الدوسري'

"""
tests/test_schedule_manager.py

Exam schedule maintenance and envelope generation.
"""
import re

import pytest

from exam_control.modules import models
from exam_control.modules.errors import ConfirmationRequired, PermissionDenied, ValidationError
from exam_control.modules.schedule_manager import ScheduleManager, generate_envelope_code, weekday_name


class ScriptedRng:
    def __init__(self, values):
        self.values = list(values)

    def randint(self, low, high):
        return self.values.pop(0)


def test_weekday_name_in_arabic():
    assert weekday_name('2023-10-20') == 'الجمعة'
    assert weekday_name('2023-10-22') == 'الأحد'


def test_invalid_date_is_rejected(schedule, admin):
    with pytest.raises(ValidationError):
        schedule.add_schedule_item(admin, 'الكيمياء', 'الثالث ثانوي', '2023-13-40')


def test_add_item_defaults(mirror, schedule, admin):
    item = schedule.add_schedule_item(admin, 'الكيمياء', 'الثالث ثانوي', '2023-10-25')
    assert item.day == 'الأربعاء'
    assert item.period == 'First'
    assert item.start_time == '07:30'
    assert mirror.schedule == [item]


def test_envelope_code_redrawn_on_collision():
    code = generate_envelope_code('2023-10-25', {'ENV-20231025-1234'}, ScriptedRng([1234, 5678]))
    assert code == 'ENV-20231025-5678'


def test_generation_without_committees(schedule, admin):
    schedule.add_schedule_item(admin, 'الكيمياء', 'الثالث ثانوي', '2023-10-25')
    result = schedule.generate_envelopes(admin, committees=[], confirmed=True)
    assert result['reason'] == 'no_committees'
    assert result['created'] == 0


def test_generation_without_schedule(schedule, admin):
    assert schedule.generate_envelopes(admin, confirmed=True)['reason'] == 'no_schedule'


def test_generation_needs_confirmation(db, schedule, admin):
    schedule.add_schedule_item(admin, 'الكيمياء', 'الثالث ثانوي', '2023-10-25')
    with pytest.raises(ConfirmationRequired):
        schedule.generate_envelopes(admin)
    assert db.count(models.ENVELOPES) == 3


def test_generation_is_admin_only(schedule, teacher):
    with pytest.raises(PermissionDenied):
        schedule.generate_envelopes(teacher, confirmed=True)


def test_generation_creates_one_envelope_per_committee(db, mirror, schedule, admin):
    schedule.add_schedule_item(admin, 'الكيمياء', 'الثالث ثانوي', '2023-10-25', period='Second')

    result = schedule.generate_envelopes(admin, confirmed=True)

    assert result['created'] == 2
    created = [e for e in mirror.envelopes if e.subject == 'الكيمياء']
    assert {e.committee_id for e in created} == {'c1', 'c2'}
    assert all(e.period == 'Second' and e.status.value == 'STORAGE' for e in created)
    assert all(re.match(r'^ENV-20231025-\d{4}$', e.barcode) for e in created)
    assert len({e.barcode for e in mirror.envelopes}) == len(mirror.envelopes)


def test_repeat_generation_adds_nothing(db, schedule, admin):
    schedule.add_schedule_item(admin, 'الكيمياء', 'الثالث ثانوي', '2023-10-25')
    schedule.generate_envelopes(admin, confirmed=True)

    result = schedule.generate_envelopes(admin, confirmed=True)

    assert result['created'] == 0
    assert result['reason'] == 'already_generated'
    assert db.count(models.ENVELOPES) == 5


def test_existing_demo_envelopes_count_as_generated(db, schedule, admin):
    # e1 and e3 already cover this exam in both committees
    schedule.add_schedule_item(admin, 'الرياضيات', 'الثالث ثانوي', '2023-10-20')
    assert schedule.generate_envelopes(admin, confirmed=True)['created'] == 0


def test_duplicate_schedule_rows_yield_one_envelope(db, schedule, admin):
    schedule.add_schedule_item(admin, 'الأحياء', 'الأول ثانوي', '2023-10-26')
    schedule.add_schedule_item(admin, 'الأحياء', 'الأول ثانوي', '2023-10-26', period='Second')
    assert schedule.generate_envelopes(admin, confirmed=True)['created'] == 2


def test_deleting_schedule_item_keeps_envelopes(db, mirror, schedule, admin):
    item = schedule.add_schedule_item(admin, 'الكيمياء', 'الثالث ثانوي', '2023-10-25')
    schedule.generate_envelopes(admin, confirmed=True)
    schedule.delete_schedule_item(admin, item.id)
    assert mirror.schedule == []
    assert db.count(models.ENVELOPES) == 5


def test_code_attempts_are_bounded(db, mirror, admin):
    manager = ScheduleManager(db, mirror, rng=ScriptedRng([1234, 1234]), code_attempts=1)
    with pytest.raises(ValidationError):
        generate_envelope_code('2023-10-25', {'ENV-20231025-1234'}, ScriptedRng([1234]), max_attempts=1)

    manager.add_schedule_item(admin, 'الكيمياء', 'الثالث ثانوي', '2023-10-25')
    # second committee draws the code the first one just took
    with pytest.raises(ValidationError):
        manager.generate_envelopes(admin, confirmed=True)
    assert db.count(models.ENVELOPES) == 3

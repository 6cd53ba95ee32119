"""
tests/test_envelope_manager.py

Handover desk scenarios against the demo roster.
"""
import pytest

from exam_control.modules import models
from exam_control.modules.envelope_manager import EnvelopeLifecycleManager
from exam_control.modules.errors import (
    AlreadyHandedOver, AlreadyInStorage, InvalidEnvelopeCode, InvalidTeacherCode,
    PermissionDenied, ValidationError
)
from exam_control.modules.models import EnvelopeStatus
from exam_control.modules.state_mirror import StateMirror


def test_check_out_moves_envelope_to_teacher(db, mirror, envelopes, admin):
    result = envelopes.handover(admin, 'TCH-101', 'ENV-MATH-101', 'CHECK_OUT')

    assert result['success']
    assert result['redirect_to_attendance'] == 'e1'
    assert mirror.get_envelope('e1').status == EnvelopeStatus.WITH_TEACHER
    assert db.get_document(models.ENVELOPES, 'e1')['status'] == 'WITH_TEACHER'

    assert db.count(models.LOGS) == 1
    log = mirror.logs[0]
    assert log.teacher_name == 'أ. فهد العتيبي'
    assert log.envelope_subject == 'الرياضيات'
    assert log.committee_name == 'لجنة (1) - قاعة المتنبي'


def test_second_check_out_is_rejected(db, mirror, envelopes, teacher):
    envelopes.handover(teacher, 'TCH-101', 'ENV-MATH-101', 'CHECK_OUT')

    with pytest.raises(AlreadyHandedOver):
        envelopes.handover(teacher, 'TCH-102', 'ENV-MATH-101', 'CHECK_OUT')

    assert db.count(models.LOGS) == 1
    assert mirror.get_envelope('e1').status == EnvelopeStatus.WITH_TEACHER


def test_check_in_of_stored_envelope_is_rejected(db, envelopes, admin):
    with pytest.raises(AlreadyInStorage):
        envelopes.handover(admin, 'TCH-101', 'ENV-PHYS-102', 'CHECK_IN')
    assert db.count(models.LOGS) == 0


def test_full_cycle_ends_completed(mirror, envelopes, admin):
    envelopes.handover(admin, 'TCH-101', 'ENV-MATH-103', 'CHECK_OUT')
    result = envelopes.handover(admin, 'TCH-101', 'ENV-MATH-103', 'CHECK_IN')

    assert result['redirect_to_attendance'] is None
    assert mirror.get_envelope('e3').status == EnvelopeStatus.COMPLETED
    assert [log.type.value for log in mirror.logs] == ['CHECK_IN', 'CHECK_OUT']

    # a completed envelope never goes back out
    with pytest.raises(AlreadyHandedOver):
        envelopes.handover(admin, 'TCH-101', 'ENV-MATH-103', 'CHECK_OUT')


def test_unknown_codes(db, envelopes, admin):
    with pytest.raises(InvalidTeacherCode):
        envelopes.handover(admin, 'TCH-999', 'ENV-MATH-101', 'CHECK_OUT')
    with pytest.raises(InvalidEnvelopeCode):
        envelopes.handover(admin, 'TCH-101', 'ENV-NOPE', 'CHECK_OUT')
    # codes match exactly, case included
    with pytest.raises(InvalidTeacherCode):
        envelopes.handover(admin, 'tch-101', 'ENV-MATH-101', 'CHECK_OUT')
    assert db.count(models.LOGS) == 0


def test_counselor_card_cannot_take_envelopes(envelopes, admin):
    with pytest.raises(InvalidTeacherCode):
        envelopes.handover(admin, 'CNS-201', 'ENV-MATH-101', 'CHECK_OUT')


def test_admin_card_can_take_envelopes(mirror, envelopes, admin):
    envelopes.handover(admin, 'USR-001', 'ENV-PHYS-102', 'CHECK_OUT')
    assert mirror.get_envelope('e2').status == EnvelopeStatus.WITH_TEACHER


def test_counselor_session_cannot_operate_desk(envelopes, counselor):
    with pytest.raises(PermissionDenied):
        envelopes.handover(counselor, 'TCH-101', 'ENV-MATH-101', 'CHECK_OUT')


def test_stale_mirror_loses_race(db, mirror, envelopes, admin):
    other_mirror = StateMirror(db)
    other_mirror.refresh()
    other_desk = EnvelopeLifecycleManager(db, other_mirror)

    envelopes.handover(admin, 'TCH-101', 'ENV-MATH-101', 'CHECK_OUT')
    assert other_mirror.get_envelope('e1').status == EnvelopeStatus.STORAGE

    with pytest.raises(AlreadyHandedOver):
        other_desk.handover(admin, 'TCH-102', 'ENV-MATH-101', 'CHECK_OUT')

    assert db.count(models.LOGS) == 1
    assert other_mirror.get_envelope('e1').status == EnvelopeStatus.WITH_TEACHER


def test_assign_and_reconcile_proctor(db, mirror, envelopes, auth, admin):
    envelopes.assign_proctor(admin, 'e1', 'u2')
    assert db.get_document(models.ENVELOPES, 'e1')['proctorName'] == 'أ. فهد العتيبي'

    auth.rename_user(admin, 'u2', 'أ. فهد بن سعد العتيبي')
    assert mirror.get_envelope('e1').proctor_name == 'أ. فهد بن سعد العتيبي'
    assert db.get_document(models.ENVELOPES, 'e1')['proctorName'] == 'أ. فهد بن سعد العتيبي'

    envelopes.assign_proctor(admin, 'e1', '')
    assert mirror.get_envelope('e1').proctor_id is None


def test_renaming_user_keeps_log_history(db, mirror, envelopes, auth, admin):
    envelopes.handover(admin, 'TCH-101', 'ENV-MATH-101', 'CHECK_OUT')
    auth.rename_user(admin, 'u2', 'اسم جديد')
    assert db.fetch_all(models.LOGS)[0]['teacherName'] == 'أ. فهد العتيبي'


def test_log_names_unknown_committee(db, mirror, envelopes, admin):
    db.set_document(models.ENVELOPES, 'e9', {
        'subject': 'التاريخ', 'grade': 'الثالث ثانوي', 'date': '2023-10-24',
        'barcode': 'ENV-HIST-109', 'committeeId': 'removed-committee', 'status': 'STORAGE'
    })
    mirror.refresh()

    envelopes.handover(admin, 'TCH-102', 'ENV-HIST-109', 'CHECK_OUT')

    assert mirror.logs[0].committee_name == 'غير معروف'
    assert db.fetch_all(models.LOGS)[0]['committeeName'] == 'غير معروف'


def test_unknown_action_is_a_validation_error(db, envelopes, admin):
    with pytest.raises(ValidationError):
        envelopes.handover(admin, 'TCH-101', 'ENV-MATH-101', 'checkout')
    assert db.get_document(models.ENVELOPES, 'e1')['status'] == 'STORAGE'
    assert db.count(models.LOGS) == 0

"""
Schedule Manager Module - Exam Control System
Author: Exam Control Team
Date: October 2026

This module maintains the exam schedule and turns it into envelopes: one
envelope for every scheduled exam in every committee.

Features:
- Exam schedule creation and deletion
- Arabic weekday derivation
- Envelope generation without duplicates
- Unique envelope scan codes (ENV-<YYYYMMDD>-<4 digits>)
"""

from datetime import date as date_type
from typing import Any, Dict, Iterable, List, Optional, Set
import logging
import random

from exam_control.modules import models
from exam_control.modules.auth_manager import SessionContext, require_permission
from exam_control.modules.errors import ConfirmationRequired, ValidationError
from exam_control.modules.models import Committee, EnvelopeStatus, ExamEnvelope, ExamScheduleItem

ARABIC_WEEKDAYS = {
    0: 'الاثنين',
    1: 'الثلاثاء',
    2: 'الأربعاء',
    3: 'الخميس',
    4: 'الجمعة',
    5: 'السبت',
    6: 'الأحد'
}

PERIODS = ('First', 'Second')
DEFAULT_START_TIME = '07:30'
ENVELOPE_CODE_PREFIX = 'ENV'
MAX_CODE_ATTEMPTS = 1000


def weekday_name(iso_date: str) -> str:
    """Arabic weekday name of a YYYY-MM-DD date."""
    try:
        return ARABIC_WEEKDAYS[date_type.fromisoformat(iso_date).weekday()]
    except ValueError:
        raise ValidationError('تاريخ غير صحيح', date=iso_date)


def generate_envelope_code(iso_date: str, taken: Set[str], rng=random,
                           max_attempts: int = MAX_CODE_ATTEMPTS) -> str:
    """
    Draw ENV-<YYYYMMDD>-<1000..9999> until the code is not in ``taken``.
    """
    stamp = iso_date.replace('-', '')
    for _ in range(max_attempts):
        code = f"{ENVELOPE_CODE_PREFIX}-{stamp}-{rng.randint(1000, 9999)}"
        if code not in taken:
            return code
    raise ValidationError('تعذر توليد باركود فريد للمظروف', date=iso_date)


def plan_envelopes(schedule_items: Iterable[ExamScheduleItem],
                   committees: Iterable[Committee],
                   existing_envelopes: Iterable[ExamEnvelope],
                   id_factory,
                   rng=random,
                   max_attempts: int = MAX_CODE_ATTEMPTS) -> List[ExamEnvelope]:
    """
    Envelopes missing for every (schedule item x committee) pair.

    A pair is skipped when an envelope with the same subject, grade,
    committee and date exists already or was planned earlier in this run.
    """
    existing_envelopes = list(existing_envelopes)
    identities = {e.identity() for e in existing_envelopes}
    taken_codes = {e.barcode for e in existing_envelopes}
    committees = list(committees)

    planned = []
    for item in schedule_items:
        for committee in committees:
            identity = (item.subject, item.grade, committee.id, item.date)
            if identity in identities:
                continue
            code = generate_envelope_code(item.date, taken_codes, rng, max_attempts)
            envelope = ExamEnvelope(
                id=id_factory(),
                subject=item.subject,
                grade=item.grade,
                date=item.date,
                barcode=code,
                committee_id=committee.id,
                status=EnvelopeStatus.STORAGE,
                period=item.period
            )
            identities.add(identity)
            taken_codes.add(code)
            planned.append(envelope)
    return planned


class ScheduleManager:
    """Exam schedule administration and schedule-driven envelope generation."""

    def __init__(self, database_manager, state_mirror, rng=None,
                 code_attempts: int = MAX_CODE_ATTEMPTS):
        self.db = database_manager
        self.mirror = state_mirror
        self.rng = rng or random.Random()
        self.code_attempts = code_attempts
        self.logger = logging.getLogger(__name__)

    def add_schedule_item(self, context: SessionContext, subject: str, grade: str, date: str,
                          period: str = 'First', start_time: Optional[str] = None) -> ExamScheduleItem:
        """
        Add an exam to the schedule.

        Args:
            context (SessionContext): Must allow managing the schedule
            subject (str): Subject name
            grade (str): Grade the exam is for
            date (str): YYYY-MM-DD
            period (str): First or Second
            start_time (str): HH:MM, defaults to 07:30

        Returns:
            ExamScheduleItem: The stored item
        """
        require_permission(context, 'manage_schedule')
        subject = (subject or '').strip()
        if not subject or not date or not grade:
            raise ValidationError('الرجاء تعبئة البيانات الأساسية (المادة، التاريخ، الصف)')
        if period not in PERIODS:
            raise ValidationError('الفترة غير صحيحة', period=period)

        item = ExamScheduleItem(
            id='',
            subject=subject,
            grade=grade,
            date=date,
            day=weekday_name(date),
            period=period,
            start_time=start_time or DEFAULT_START_TIME
        )
        data = item.to_dict()
        del data['id']
        item.id = self.db.add_document(models.SCHEDULE, data)

        self.mirror.schedule.append(item)
        self.mirror.schedule.sort(key=lambda i: i.date)
        self.logger.info(f"Schedule item added: {subject} ({grade}) on {date}")
        return item

    def delete_schedule_item(self, context: SessionContext, item_id: str) -> bool:
        """Remove an exam from the schedule. Generated envelopes are kept."""
        require_permission(context, 'manage_schedule')
        self.db.delete_document(models.SCHEDULE, item_id)
        self.mirror.schedule = [i for i in self.mirror.schedule if i.id != item_id]
        self.logger.info(f"Schedule item deleted: {item_id}")
        return True

    def generate_envelopes(self, context: SessionContext,
                           schedule_items: Optional[List[ExamScheduleItem]] = None,
                           committees: Optional[List[Committee]] = None,
                           existing_envelopes: Optional[List[ExamEnvelope]] = None,
                           confirmed: bool = False) -> Dict[str, Any]:
        """
        Create the envelopes missing for the schedule. Inputs default to the
        mirror's current schedule, committees and envelopes.

        Returns:
            Dict[str, Any]: Number created, or a reason when nothing could be done
        """
        require_permission(context, 'generate_envelopes')
        schedule_items = self.mirror.schedule if schedule_items is None else schedule_items
        committees = self.mirror.committees if committees is None else committees
        existing_envelopes = self.mirror.envelopes if existing_envelopes is None else existing_envelopes

        if not schedule_items:
            return {
                'success': False,
                'created': 0,
                'reason': 'no_schedule',
                'message': 'لا يوجد جدول اختبارات لتوليد المظاريف منه.'
            }
        if not committees:
            return {
                'success': False,
                'created': 0,
                'reason': 'no_committees',
                'message': 'يجب إضافة لجان أولاً لتوزيع المظاريف عليها.'
            }
        if not confirmed:
            raise ConfirmationRequired(
                f"سيتم توليد مظاريف لجميع المواد في الجدول وتوزيعها على {len(committees)} لجنة."
            )

        planned = plan_envelopes(
            schedule_items, committees, existing_envelopes,
            id_factory=self.db.new_document_id, rng=self.rng,
            max_attempts=self.code_attempts
        )
        if not planned:
            return {
                'success': True,
                'created': 0,
                'reason': 'already_generated',
                'message': 'لم يتم إضافة مظاريف جديدة (قد تكون موجودة مسبقاً).'
            }

        operations = [('set', models.ENVELOPES, e.id, e.to_dict()) for e in planned]
        commits = self.db.commit_in_chunks(operations)
        self.mirror.refresh_envelopes()

        self.logger.info(f"Generated {len(planned)} envelopes in {commits} batches")
        return {
            'success': True,
            'created': len(planned),
            'batches': commits,
            'envelopes': [e.to_dict() for e in planned],
            'message': f"تم توليد {len(planned)} مظروف بنجاح!"
        }

"""
Envelope Manager Module - Exam Control System
Author: Exam Control Team
Date: October 2026

This module owns the custody rules for exam envelopes. An envelope leaves
storage when a proctor collects it (CHECK_OUT) and is completed when the
proctor returns it (CHECK_IN). Every transition is recorded in the
append-only handover log.

Features:
- Handover validation against scanned teacher and envelope codes
- Forward-only status lifecycle STORAGE -> WITH_TEACHER -> COMPLETED
- Conditional status writes (first valid handover wins)
- Handover logging with denormalized display names
- Proctor assignment and proctor name reconciliation
"""

from typing import Any, Dict, List, Optional, Union
import logging

from exam_control.modules import models
from exam_control.modules.auth_manager import SessionContext, require_permission
from exam_control.modules.errors import (
    AlreadyHandedOver, AlreadyInStorage, InvalidEnvelopeCode, InvalidTeacherCode,
    ValidationError
)
from exam_control.modules.models import (
    EnvelopeStatus, ExamEnvelope, HandoverLog, HandoverType, UNKNOWN_COMMITTEE, User
)

# action -> (required current status, resulting status, error on mismatch)
TRANSITIONS = {
    HandoverType.CHECK_OUT: (EnvelopeStatus.STORAGE, EnvelopeStatus.WITH_TEACHER, AlreadyHandedOver),
    HandoverType.CHECK_IN: (EnvelopeStatus.WITH_TEACHER, EnvelopeStatus.COMPLETED, AlreadyInStorage),
}


class EnvelopeLifecycleManager:
    """
    Validates and executes envelope handovers and keeps the envelope and
    log mirrors consistent with what was written.
    """

    def __init__(self, database_manager, state_mirror):
        """
        Args:
            database_manager: Database manager instance
            state_mirror: In-memory mirror of the store
        """
        self.db = database_manager
        self.mirror = state_mirror
        self.logger = logging.getLogger(__name__)

    def handover(self, context: SessionContext, teacher_code: str, envelope_code: str,
                 action: Union[str, HandoverType]) -> Dict[str, Any]:
        """
        Hand an envelope to a proctor or take it back.

        Args:
            context (SessionContext): Who operates the handover desk
            teacher_code (str): Scanned teacher card, matched exactly
            envelope_code (str): Scanned envelope code, matched exactly
            action (str): CHECK_OUT or CHECK_IN

        Returns:
            Dict[str, Any]: Updated envelope, the new log entry and, for a
            CHECK_OUT, the exam to open in the attendance view

        Raises:
            InvalidTeacherCode, InvalidEnvelopeCode, AlreadyHandedOver,
            AlreadyInStorage, StoreWriteFailure
        """
        require_permission(context, 'handover')
        try:
            action = HandoverType(action)
        except ValueError:
            raise ValidationError('نوع العملية غير صحيح', action=str(action))

        teacher = self._resolve_teacher(teacher_code)
        envelope = self.mirror.find_envelope_by_barcode(envelope_code)
        if envelope is None:
            raise InvalidEnvelopeCode(code=envelope_code)

        required_status, new_status, mismatch_error = TRANSITIONS[action]
        if envelope.status != required_status:
            raise mismatch_error(envelope=envelope.barcode, status=envelope.status.value)

        committee = self.mirror.get_committee(envelope.committee_id)

        # The snapshot may be stale; the store decides who wins.
        applied = self.db.update_fields(
            models.ENVELOPES, envelope.id,
            {'status': new_status.value},
            expected={'status': required_status.value}
        )
        if not applied:
            self._reload_envelope(envelope.id)
            raise mismatch_error(envelope=envelope.barcode)

        log = HandoverLog(
            id='',
            timestamp=models.now_iso(),
            type=action,
            teacher_name=teacher.name,
            envelope_subject=envelope.subject,
            committee_name=committee.name if committee else UNKNOWN_COMMITTEE
        )
        log_data = log.to_dict()
        del log_data['id']
        log.id = self.db.add_document(models.LOGS, log_data)

        envelope.status = new_status
        self.mirror.replace_envelope(envelope)
        self.mirror.logs.insert(0, log)

        verb = 'تم التسليم' if action == HandoverType.CHECK_OUT else 'تم الاستلام'
        self.logger.info(
            f"Handover {action.value}: envelope {envelope.barcode} -> {new_status.value} "
            f"by {teacher.id}"
        )

        return {
            'success': True,
            'message': f"{verb}: {envelope.subject}",
            'envelope': envelope.to_dict(),
            'log': log.to_dict(),
            'redirect_to_attendance': envelope.id if action == HandoverType.CHECK_OUT else None
        }

    def _resolve_teacher(self, teacher_code: str) -> User:
        teacher = next(
            (u for u in self.mirror.users if u.barcode == teacher_code and u.can_proctor),
            None
        )
        if teacher is None:
            raise InvalidTeacherCode(code=teacher_code)
        return teacher

    def _reload_envelope(self, envelope_id: str) -> None:
        document = self.db.get_document(models.ENVELOPES, envelope_id)
        if document:
            self.mirror.replace_envelope(ExamEnvelope.from_dict(document))

    def assign_proctor(self, context: SessionContext, envelope_id: str,
                       proctor_id: Optional[str]) -> ExamEnvelope:
        """
        Assign (or clear, with an empty id) the proctor of one exam session.
        The proctor's name is copied onto the envelope for display.
        """
        require_permission(context, 'assign_proctors')
        envelope = self.mirror.get_envelope(envelope_id)
        if envelope is None:
            raise ValidationError('المظروف غير موجود', envelope_id=envelope_id)

        proctor = self.mirror.get_user(proctor_id) if proctor_id else None
        if proctor_id and proctor is None:
            raise ValidationError('المراقب غير موجود', proctor_id=proctor_id)

        proctor_name = proctor.name if proctor else ''
        self.db.update_fields(
            models.ENVELOPES, envelope_id,
            {'proctorId': proctor_id or '', 'proctorName': proctor_name}
        )
        envelope.proctor_id = proctor_id or None
        envelope.proctor_name = proctor_name or None
        self.mirror.replace_envelope(envelope)

        self.logger.info(f"Proctor {proctor_id or '-'} assigned to envelope {envelope_id}")
        return envelope

    def reconcile_proctor_names(self, user: User) -> int:
        """
        Rewrite the denormalized proctor name on every envelope assigned to
        ``user``. Returns the number of envelopes changed.
        """
        stale = [
            e for e in self.mirror.envelopes
            if e.proctor_id == user.id and e.proctor_name != user.name
        ]
        if not stale:
            return 0

        operations = [
            ('update', models.ENVELOPES, e.id, {'proctorName': user.name}) for e in stale
        ]
        self.db.commit_in_chunks(operations)
        for envelope in stale:
            envelope.proctor_name = user.name

        self.logger.info(f"Reconciled proctor name on {len(stale)} envelopes for user {user.id}")
        return len(stale)

    def envelopes_for_committee(self, committee_id: str) -> List[ExamEnvelope]:
        """Exams of one committee, earliest first."""
        return sorted(
            (e for e in self.mirror.envelopes if e.committee_id == committee_id),
            key=lambda e: e.date
        )

    def recent_logs(self, limit: int = 8) -> List[Dict[str, Any]]:
        return [log.to_dict() for log in self.mirror.logs[:limit]]

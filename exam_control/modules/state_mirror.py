"""
State Mirror Module - Exam Control System

Transient in-memory copy of every collection. The mirror is reloaded wholesale
by refresh() and patched by the managers after each of their own writes, so
screens render from it without another round trip to the store.
"""

import logging
from typing import Any, Dict, List, Optional

from exam_control.modules import models
from exam_control.modules.errors import StoreWriteFailure
from exam_control.modules.models import (
    AttendanceRecord, AttendanceStatus, Committee, EnvelopeStatus, ExamEnvelope,
    ExamScheduleItem, HandoverLog, Student, User
)


class StateMirror:
    """Optimistically patched copy of the remote document store."""

    def __init__(self, database_manager):
        self.db = database_manager
        self.logger = logging.getLogger(__name__)

        self.users: List[User] = []
        self.students: List[Student] = []
        self.committees: List[Committee] = []
        self.envelopes: List[ExamEnvelope] = []
        self.logs: List[HandoverLog] = []
        self.attendance: List[AttendanceRecord] = []
        self.schedule: List[ExamScheduleItem] = []

        self.is_live = False
        self.connection_error: Optional[str] = None

    def refresh(self) -> bool:
        """
        Reload every collection from the store.

        Returns:
            bool: True when the store answered, False when it is unreachable
        """
        try:
            self.users = [User.from_dict(d) for d in self.db.fetch_all(models.USERS)]
            self.students = [Student.from_dict(d) for d in self.db.fetch_all(models.STUDENTS)]
            self.committees = [Committee.from_dict(d) for d in self.db.fetch_all(models.COMMITTEES)]
            self.envelopes = [ExamEnvelope.from_dict(d) for d in self.db.fetch_all(models.ENVELOPES)]
            self.logs = [
                HandoverLog.from_dict(d)
                for d in self.db.fetch_ordered(models.LOGS, 'timestamp', descending=True)
            ]
            self.attendance = [AttendanceRecord.from_dict(d) for d in self.db.fetch_all(models.ATTENDANCE)]
            self.schedule = [
                ExamScheduleItem.from_dict(d)
                for d in self.db.fetch_ordered(models.SCHEDULE, 'date')
            ]
        except StoreWriteFailure as e:
            self.is_live = False
            self.connection_error = e.message
            self.logger.error(f"Error fetching data: {e.details or e.message}")
            return False

        self.is_live = True
        self.connection_error = None
        self.logger.info(
            f"Mirror refreshed: {len(self.users)} users, {len(self.students)} students, "
            f"{len(self.envelopes)} envelopes"
        )
        return True

    def refresh_envelopes(self) -> None:
        self.envelopes = [ExamEnvelope.from_dict(d) for d in self.db.fetch_all(models.ENVELOPES)]

    # Lookups

    def get_user(self, user_id: str) -> Optional[User]:
        return next((u for u in self.users if u.id == user_id), None)

    def find_user_by_barcode(self, barcode: str) -> Optional[User]:
        return next((u for u in self.users if u.barcode == barcode), None)

    def proctors(self) -> List[User]:
        return [u for u in self.users if u.can_proctor]

    def get_committee(self, committee_id: str) -> Optional[Committee]:
        return next((c for c in self.committees if c.id == committee_id), None)

    def get_envelope(self, envelope_id: str) -> Optional[ExamEnvelope]:
        return next((e for e in self.envelopes if e.id == envelope_id), None)

    def find_envelope_by_barcode(self, barcode: str) -> Optional[ExamEnvelope]:
        return next((e for e in self.envelopes if e.barcode == barcode), None)

    def get_student(self, student_id: str) -> Optional[Student]:
        return next((s for s in self.students if s.id == student_id), None)

    def find_attendance(self, student_id: str, exam_id: str) -> Optional[AttendanceRecord]:
        return next(
            (a for a in self.attendance if a.student_id == student_id and a.exam_id == exam_id),
            None
        )

    # Patches

    def replace_envelope(self, envelope: ExamEnvelope) -> None:
        self.envelopes = [envelope if e.id == envelope.id else e for e in self.envelopes]

    def upsert_attendance(self, record: AttendanceRecord) -> None:
        self.attendance = [
            a for a in self.attendance
            if not (a.student_id == record.student_id and a.exam_id == record.exam_id)
        ]
        self.attendance.append(record)

    def dashboard_summary(self) -> Dict[str, Any]:
        """Counts shown on the dashboard plus the five latest handovers."""
        return {
            'absent_count': sum(1 for a in self.attendance if a.status == AttendanceStatus.ABSENT),
            'active_envelopes': sum(1 for e in self.envelopes if e.status == EnvelopeStatus.WITH_TEACHER),
            'total_envelopes': len(self.envelopes),
            'total_students': len(self.students),
            'total_committees': len(self.committees),
            'recent_logs': [log.to_dict() for log in self.logs[:5]],
            'is_live': self.is_live
        }

"""
Attendance Manager Module - Exam Control System
Author: Exam Control Team
Date: October 2026

This module records student attendance per exam. Each (student, exam) pair
owns exactly one record, stored under the key "<studentId>_<examId>";
marking a student again overwrites the previous status.

Features:
- Single student attendance toggling (upsert)
- Bulk "everyone present" for the students shown on screen
- Exam roster filtering by grade and name search
- Absence alerts with parent contact links
"""

from typing import Any, Dict, List, Optional
import logging

from exam_control.modules import models
from exam_control.modules.auth_manager import SessionContext, require_permission
from exam_control.modules.errors import ConfirmationRequired
from exam_control.modules.models import AttendanceRecord, AttendanceStatus, Student, attendance_key

WHATSAPP_COUNTRY_CODE = '966'


class AttendanceManager:
    """
    Attendance recorder driven by the attendance screen.
    No referential validation is done: a record pointing to a deleted student
    or exam is kept and simply skipped by the views.
    """

    def __init__(self, database_manager, state_mirror):
        """
        Initialize the attendance manager.

        Args:
            database_manager: Database manager instance
            state_mirror: In-memory mirror of the store
        """
        self.db = database_manager
        self.mirror = state_mirror
        self.logger = logging.getLogger(__name__)

    def set_attendance(self, context: SessionContext, student_id: str, exam_id: str,
                       present: bool) -> AttendanceRecord:
        """
        Mark one student present or absent for one exam.

        Args:
            context (SessionContext): Who takes attendance
            student_id (str): Student id
            exam_id (str): Envelope id of the exam
            present (bool): True for PRESENT, False for ABSENT

        Returns:
            AttendanceRecord: The record now stored for the pair
        """
        require_permission(context, 'take_attendance')
        record = AttendanceRecord(
            exam_id=exam_id,
            student_id=student_id,
            status=AttendanceStatus.PRESENT if present else AttendanceStatus.ABSENT,
            timestamp=models.now_iso()
        )

        self.mirror.upsert_attendance(record)
        self.db.set_document(models.ATTENDANCE, record.key, record.to_dict())

        self.logger.info(f"Attendance recorded: student {student_id}, exam {exam_id}, status {record.status.value}")
        return record

    def toggle_attendance(self, context: SessionContext, student_id: str, exam_id: str) -> AttendanceRecord:
        """Flip a student between present and absent; unmarked students become absent."""
        existing = self.mirror.find_attendance(student_id, exam_id)
        is_absent = existing is not None and existing.status == AttendanceStatus.ABSENT
        return self.set_attendance(context, student_id, exam_id, present=is_absent)

    def mark_all_present(self, context: SessionContext, exam_id: str,
                         candidate_students: List[Student], confirmed: bool = False) -> Dict[str, Any]:
        """
        Create a PRESENT record for every candidate without any record for the exam.
        Existing records are left as they are, whatever their status, and students
        outside ``candidate_students`` are never touched.

        Args:
            context (SessionContext): Who takes attendance
            exam_id (str): Envelope id of the exam
            candidate_students (List[Student]): Students currently listed on screen
            confirmed (bool): Explicit confirmation from the operator

        Returns:
            Dict[str, Any]: Number of records created
        """
        require_permission(context, 'take_attendance')
        if not confirmed:
            raise ConfirmationRequired('هل أنت متأكد من تحضير جميع الطلاب المتبقين في القائمة؟')

        timestamp = models.now_iso()
        new_records = []
        seen = set()
        for student in candidate_students:
            if student.id in seen or self.mirror.find_attendance(student.id, exam_id):
                continue
            seen.add(student.id)
            new_records.append(AttendanceRecord(
                exam_id=exam_id,
                student_id=student.id,
                status=AttendanceStatus.PRESENT,
                timestamp=timestamp
            ))

        if new_records:
            operations = [
                ('set', models.ATTENDANCE, record.key, record.to_dict()) for record in new_records
            ]
            self.db.commit_in_chunks(operations)
            self.mirror.attendance.extend(new_records)

        self.logger.info(f"Marked {len(new_records)} students present for exam {exam_id}")
        return {
            'success': True,
            'created': len(new_records),
            'skipped': len(candidate_students) - len(new_records)
        }

    def exam_roster(self, exam_id: Optional[str], search_term: str = '') -> Dict[str, Any]:
        """
        Students sitting an exam: same grade as the envelope, optionally
        narrowed by a name search. Falls back to the first envelope when
        no exam is selected.

        Returns:
            Dict[str, Any]: The exam, the filtered students with their status,
            and the unfiltered count
        """
        envelope = self.mirror.get_envelope(exam_id) if exam_id else None
        if envelope is None and self.mirror.envelopes:
            envelope = self.mirror.envelopes[0]
        if envelope is None:
            return {'exam': None, 'students': [], 'shown': 0, 'total': 0}

        same_grade = [s for s in self.mirror.students if s.grade == envelope.grade]
        term = (search_term or '').strip()
        shown = [s for s in same_grade if term in s.name]

        committee = self.mirror.get_committee(envelope.committee_id)
        students = []
        for student in shown:
            record = self.mirror.find_attendance(student.id, envelope.id)
            students.append({
                'id': student.id,
                'name': student.name,
                'seat_number': student.seat_number,
                'status': record.status.value if record else None
            })

        return {
            'exam': envelope.to_dict(),
            'committee_name': committee.name if committee else None,
            'students': students,
            'candidates': shown,
            'shown': len(shown),
            'total': len(same_grade)
        }

    def absence_alerts(self) -> List[Dict[str, Any]]:
        """
        Absent students with the exam they missed and links to reach a parent.
        Records whose student or exam no longer exists are skipped.
        """
        alerts = []
        for record in self.mirror.attendance:
            if record.status != AttendanceStatus.ABSENT:
                continue
            student = self.mirror.get_student(record.student_id)
            exam = self.mirror.get_envelope(record.exam_id)
            if not student or not exam:
                continue
            alerts.append({
                'student_id': student.id,
                'student_name': student.name,
                'exam_id': exam.id,
                'subject': exam.subject,
                'parent_phone': student.parent_phone,
                'call_link': f"tel:{student.parent_phone}",
                'whatsapp_link': whatsapp_link(student.parent_phone),
                'timestamp': record.timestamp
            })
        return alerts

    def get_record(self, student_id: str, exam_id: str) -> Optional[Dict[str, Any]]:
        return self.db.get_document(models.ATTENDANCE, attendance_key(student_id, exam_id))


def whatsapp_link(phone: str) -> str:
    """wa.me link for a local mobile number, dropping the leading zero."""
    local = phone[1:] if phone.startswith('0') else phone
    return f"https://wa.me/{WHATSAPP_COUNTRY_CODE}{local}"

"""
Data Models Module - Exam Control System
Author: Exam Control Team
Date: October 2026

Dataclasses for every document kept in the store. Stored documents use the
camelCase keys of the existing data (committeeId, proctorName, seatNumber...),
so each model knows how to read itself from a document and write itself back.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class UserRole(str, Enum):
    ADMIN = 'ADMIN'
    TEACHER = 'TEACHER'
    COUNSELOR = 'COUNSELOR'


class EnvelopeStatus(str, Enum):
    STORAGE = 'STORAGE'
    WITH_TEACHER = 'WITH_TEACHER'
    COMPLETED = 'COMPLETED'


class HandoverType(str, Enum):
    CHECK_OUT = 'CHECK_OUT'
    CHECK_IN = 'CHECK_IN'


class AttendanceStatus(str, Enum):
    PRESENT = 'PRESENT'
    ABSENT = 'ABSENT'


# Collection names in the document store
USERS = 'users'
STUDENTS = 'students'
COMMITTEES = 'committees'
ENVELOPES = 'envelopes'
LOGS = 'handover_logs'
ATTENDANCE = 'attendance'
SCHEDULE = 'exam_schedule'

ALL_COLLECTIONS = [USERS, STUDENTS, COMMITTEES, ENVELOPES, LOGS, ATTENDANCE, SCHEDULE]

UNKNOWN_COMMITTEE = 'غير معروف'


def now_iso() -> str:
    """Current timestamp in ISO format, as written to every record."""
    return datetime.now().isoformat()


def _drop_none(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


@dataclass
class User:
    """Provisioned staff member identified by a scan code."""
    id: str
    name: str
    role: UserRole
    barcode: str

    @property
    def can_proctor(self) -> bool:
        return self.role in (UserRole.TEACHER, UserRole.ADMIN)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'User':
        return cls(
            id=data.get('id', ''),
            name=data.get('name', ''),
            role=UserRole(data.get('role', UserRole.TEACHER.value)),
            barcode=data.get('barcode', '')
        )

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'name': self.name, 'role': self.role.value, 'barcode': self.barcode}


@dataclass
class Committee:
    """Physical exam room."""
    id: str
    name: str
    location: str
    proctor_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Committee':
        return cls(
            id=data.get('id', ''),
            name=data.get('name', ''),
            location=data.get('location', ''),
            proctor_id=data.get('proctorId')
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            'id': self.id,
            'name': self.name,
            'location': self.location,
            'proctorId': self.proctor_id
        })


@dataclass
class ExamScheduleItem:
    """Planned exam occurrence, the source for envelope generation."""
    id: str
    subject: str
    grade: str
    date: str
    day: str
    period: str = 'First'
    start_time: str = '07:30'

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ExamScheduleItem':
        return cls(
            id=data.get('id', ''),
            subject=data.get('subject', ''),
            grade=data.get('grade', ''),
            date=data.get('date', ''),
            day=data.get('day', ''),
            period=data.get('period') or 'First',
            start_time=data.get('startTime') or '07:30'
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'subject': self.subject,
            'grade': self.grade,
            'date': self.date,
            'day': self.day,
            'period': self.period,
            'startTime': self.start_time
        }


@dataclass
class ExamEnvelope:
    """Unit of physical custody for one exam in one committee."""
    id: str
    subject: str
    grade: str
    date: str
    barcode: str
    committee_id: str
    status: EnvelopeStatus = EnvelopeStatus.STORAGE
    period: Optional[str] = None
    proctor_id: Optional[str] = None
    proctor_name: Optional[str] = None

    def identity(self):
        """Key used to prevent duplicate envelopes for the same exam and committee."""
        return (self.subject, self.grade, self.committee_id, self.date)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ExamEnvelope':
        return cls(
            id=data.get('id', ''),
            subject=data.get('subject', ''),
            grade=data.get('grade', ''),
            date=data.get('date', ''),
            barcode=data.get('barcode', ''),
            committee_id=data.get('committeeId', ''),
            status=EnvelopeStatus(data.get('status', EnvelopeStatus.STORAGE.value)),
            period=data.get('period'),
            proctor_id=data.get('proctorId') or None,
            proctor_name=data.get('proctorName') or None
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            'id': self.id,
            'subject': self.subject,
            'grade': self.grade,
            'date': self.date,
            'barcode': self.barcode,
            'committeeId': self.committee_id,
            'status': self.status.value,
            'period': self.period,
            'proctorId': self.proctor_id,
            'proctorName': self.proctor_name
        })


@dataclass
class HandoverLog:
    """Append-only audit record of one envelope transition."""
    id: str
    timestamp: str
    type: HandoverType
    teacher_name: str
    envelope_subject: str
    committee_name: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'HandoverLog':
        return cls(
            id=data.get('id', ''),
            timestamp=data.get('timestamp', ''),
            type=HandoverType(data.get('type', HandoverType.CHECK_OUT.value)),
            teacher_name=data.get('teacherName', ''),
            envelope_subject=data.get('envelopeSubject', ''),
            committee_name=data.get('committeeName', UNKNOWN_COMMITTEE)
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'timestamp': self.timestamp,
            'type': self.type.value,
            'teacherName': self.teacher_name,
            'envelopeSubject': self.envelope_subject,
            'committeeName': self.committee_name
        }


@dataclass
class AttendanceRecord:
    """Point record of one student's attendance at one exam."""
    exam_id: str
    student_id: str
    status: AttendanceStatus
    timestamp: str

    @property
    def key(self) -> str:
        return attendance_key(self.student_id, self.exam_id)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AttendanceRecord':
        return cls(
            exam_id=data.get('examId', ''),
            student_id=data.get('studentId', ''),
            status=AttendanceStatus(data.get('status', AttendanceStatus.PRESENT.value)),
            timestamp=data.get('timestamp', '')
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'studentId': self.student_id,
            'examId': self.exam_id,
            'status': self.status.value,
            'timestamp': self.timestamp
        }


def attendance_key(student_id: str, exam_id: str) -> str:
    return f"{student_id}_{exam_id}"


@dataclass
class Student:
    """Roster entry; committee holds the committee name, not its id."""
    id: str
    name: str
    national_id: str
    grade: str
    class_name: str
    parent_phone: str = ''
    seat_number: Optional[str] = None
    stage: Optional[str] = None
    committee: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Student':
        seat = data.get('seatNumber')
        return cls(
            id=data.get('id', ''),
            name=str(data.get('name', '')),
            national_id=str(data.get('nationalId', '')),
            grade=str(data.get('grade', '')),
            class_name=str(data.get('class', '')),
            parent_phone=str(data.get('parentPhone') or ''),
            seat_number=str(seat) if seat is not None else None,
            stage=data.get('stage'),
            committee=data.get('committee')
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'nationalId': self.national_id,
            'seatNumber': self.seat_number,
            'grade': self.grade,
            'class': self.class_name,
            'stage': self.stage,
            'committee': self.committee,
            'parentPhone': self.parent_phone
        }

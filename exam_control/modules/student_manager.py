"""
Student Manager Module - Exam Control System
Author: Exam Control Team
Date: October 2026

This module handles student roster operations for the exam control office.

Features:
- Student roster import from Excel with automatic committee creation
- Single student deletion
- Bulk deletion of the whole roster in bounded batches
- Roster listing ordered by committee and name
"""

from typing import Any, Dict, List
import logging

from exam_control.modules import models
from exam_control.modules.auth_manager import SessionContext, require_permission
from exam_control.modules.errors import ConfirmationRequired, ImportParseFailure, ValidationError
from exam_control.modules.models import Committee, Student
from exam_control.modules.roster_importer import parse_student_rows, read_workbook

DELETE_ALL_PHRASE = 'حذف'
AUTO_COMMITTEE_LOCATION = 'موقع غير محدد (تلقائي)'


class StudentManager:
    """
    Student roster administration. Students reference their committee by
    name only, so importing a roster also creates any committee it names.
    """

    def __init__(self, database_manager, state_mirror):
        """
        Initialize the student manager.

        Args:
            database_manager: Database manager instance
            state_mirror: In-memory mirror of the store
        """
        self.db = database_manager
        self.mirror = state_mirror
        self.logger = logging.getLogger(__name__)

    def import_students_from_excel(self, context: SessionContext, source,
                                   filename: str = None) -> Dict[str, Any]:
        """
        Import a student roster workbook.

        Args:
            context (SessionContext): Must allow importing rosters
            source: Path, bytes or file object of the workbook
            filename (str): Original file name

        Returns:
            Dict[str, Any]: Import result
        """
        require_permission(context, 'import_rosters')
        rows = read_workbook(source, filename)
        return self.import_students(context, parse_student_rows(rows))

    def import_students(self, context: SessionContext,
                        students_data: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Store parsed roster rows, creating every committee named in the rows
        that does not exist yet.

        Args:
            context (SessionContext): Must allow importing rosters
            students_data (List[Dict[str, Any]]): Normalized student documents

        Returns:
            Dict[str, Any]: Counts of imported students and created committees
        """
        require_permission(context, 'import_rosters')
        if not students_data:
            raise ImportParseFailure('لا توجد بيانات طلاب في الملف')

        existing_names = {c.name for c in self.mirror.committees}
        new_committees = []
        for student in students_data:
            name = student.get('committee')
            if name:
                name = str(name).strip()
                student['committee'] = name
            if name and name not in existing_names:
                existing_names.add(name)
                new_committees.append(Committee(
                    id=self.db.new_document_id(),
                    name=name,
                    location=AUTO_COMMITTEE_LOCATION
                ))

        operations = [('set', models.COMMITTEES, c.id, c.to_dict()) for c in new_committees]
        new_students = []
        for data in students_data:
            student = Student.from_dict(dict(data, id=self.db.new_document_id()))
            new_students.append(student)
            operations.append(('set', models.STUDENTS, student.id, student.to_dict()))

        commits = self.db.commit_in_chunks(operations)
        self.mirror.committees.extend(new_committees)
        self.mirror.students.extend(new_students)

        message = f"تم رفع {len(new_students)} طالب بنجاح."
        if new_committees:
            message += f" تم إنشاء {len(new_committees)} لجنة جديدة تلقائياً بناءً على البيانات."

        self.logger.info(
            f"Student import completed: {len(new_students)} students, "
            f"{len(new_committees)} committees created, {commits} batches"
        )
        return {
            'success': True,
            'imported': len(new_students),
            'committees_created': len(new_committees),
            'batches': commits,
            'message': message
        }

    def delete_student(self, context: SessionContext, student_id: str, confirmed: bool = False) -> bool:
        """Delete one student after confirmation."""
        require_permission(context, 'delete_students')
        if not confirmed:
            raise ConfirmationRequired('حذف الطالب؟')
        if self.mirror.get_student(student_id) is None:
            raise ValidationError('الطالب غير موجود', student_id=student_id)

        self.db.delete_document(models.STUDENTS, student_id)
        self.mirror.students = [s for s in self.mirror.students if s.id != student_id]
        self.logger.info(f"Student deleted: {student_id}")
        return True

    def delete_all_students(self, context: SessionContext, confirmed: bool = False,
                            confirmation_phrase: str = '') -> Dict[str, Any]:
        """
        Delete the whole roster. Requires both a yes/no confirmation and the
        typed phrase. Deletion runs against a fresh snapshot of the store in
        sequential batches; a failure leaves earlier batches applied.

        Returns:
            Dict[str, Any]: Number of students deleted and batches committed
        """
        require_permission(context, 'delete_students')
        if not confirmed:
            raise ConfirmationRequired(
                f"سيتم حذف جميع الطلاب ({len(self.mirror.students)} طالب) من قاعدة البيانات نهائياً."
            )
        if (confirmation_phrase or '').strip() != DELETE_ALL_PHRASE:
            raise ConfirmationRequired(f"للتأكيد، اكتب كلمة '{DELETE_ALL_PHRASE}'")

        documents = self.db.fetch_all(models.STUDENTS)
        if not documents:
            self.mirror.students = []
            return {
                'success': True,
                'deleted': 0,
                'batches': 0,
                'message': 'قاعدة البيانات فارغة بالفعل.'
            }

        operations = [('delete', models.STUDENTS, d['id'], None) for d in documents]
        commits = self.db.commit_in_chunks(operations)
        self.mirror.students = []

        self.logger.info(f"Deleted {len(documents)} students in {commits} batches")
        return {
            'success': True,
            'deleted': len(documents),
            'batches': commits,
            'message': f"تم حذف {len(documents)} طالب من قاعدة البيانات بنجاح."
        }

    def sorted_students(self) -> List[Student]:
        """Roster ordered by committee name, then student name."""
        return sorted(self.mirror.students, key=lambda s: (s.committee or '', s.name))

    def get_student_count(self) -> int:
        return len(self.mirror.students)

"""
Committee Manager Module - Exam Control System
Author: Exam Control Team
Date: October 2026

This module handles exam committees (the rooms where exams take place) and
the distribution of proctors over the exams held in them.

Features:
- Committee creation and renaming
- Committee overview with student counts and exam sessions
- Filtering committees by assigned proctor
- Proctor distribution import from Excel
"""

from typing import Any, Dict, List, Optional
import logging

from exam_control.modules import models
from exam_control.modules.auth_manager import SessionContext, require_permission
from exam_control.modules.errors import ConfirmationRequired, ValidationError
from exam_control.modules.models import Committee
from exam_control.modules.roster_importer import parse_proctor_rows, read_workbook


class CommitteeManager:
    """Committee administration and proctor distribution."""

    def __init__(self, database_manager, state_mirror, envelope_manager):
        """
        Initialize the committee manager.

        Args:
            database_manager: Database manager instance
            state_mirror: In-memory mirror of the store
            envelope_manager: Envelope manager, used to list exams per committee
        """
        self.db = database_manager
        self.mirror = state_mirror
        self.envelopes = envelope_manager
        self.logger = logging.getLogger(__name__)

    def create_committee(self, context: SessionContext, name: str, location: str = '') -> Committee:
        """
        Create a committee.

        Args:
            context (SessionContext): Must allow managing committees
            name (str): Unique committee name
            location (str): Where the committee sits

        Returns:
            Committee: The stored committee
        """
        require_permission(context, 'manage_committees')
        name = (name or '').strip()
        if not name:
            raise ValidationError('اسم اللجنة مطلوب')
        if any(c.name == name for c in self.mirror.committees):
            raise ValidationError('اللجنة موجودة مسبقاً', name=name)

        committee = Committee(id='', name=name, location=(location or '').strip())
        data = committee.to_dict()
        del data['id']
        committee.id = self.db.add_document(models.COMMITTEES, data)
        self.mirror.committees.append(committee)

        self.logger.info(f"Committee created: {name} (ID: {committee.id})")
        return committee

    def rename_committee(self, context: SessionContext, committee_id: str, new_name: str) -> Committee:
        """
        Rename a committee and update the committee name copied onto its
        students. Handover logs keep the name they were written with.
        """
        require_permission(context, 'manage_committees')
        committee = self.mirror.get_committee(committee_id)
        if committee is None:
            raise ValidationError('اللجنة غير موجودة', committee_id=committee_id)
        new_name = (new_name or '').strip()
        if not new_name:
            raise ValidationError('اسم اللجنة مطلوب')

        old_name = committee.name
        affected = [s for s in self.mirror.students if s.committee == old_name]
        operations = [('update', models.COMMITTEES, committee.id, {'name': new_name})]
        operations.extend(
            ('update', models.STUDENTS, s.id, {'committee': new_name}) for s in affected
        )
        self.db.commit_in_chunks(operations)

        committee.name = new_name
        for student in affected:
            student.committee = new_name

        self.logger.info(f"Committee {committee_id} renamed, {len(affected)} students updated")
        return committee

    def committees_for_proctor(self, proctor_id: Optional[str]) -> List[Committee]:
        """Committees holding at least one exam assigned to the proctor; all when no proctor."""
        if not proctor_id:
            return list(self.mirror.committees)
        return [
            c for c in self.mirror.committees
            if any(e.committee_id == c.id and e.proctor_id == proctor_id for e in self.mirror.envelopes)
        ]

    def committee_overview(self, proctor_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Committees with their student count and exams (earliest first)."""
        overview = []
        for committee in self.committees_for_proctor(proctor_id):
            overview.append({
                'committee': committee.to_dict(),
                'student_count': sum(1 for s in self.mirror.students if s.committee == committee.name),
                'exams': [e.to_dict() for e in self.envelopes.envelopes_for_committee(committee.id)]
            })
        return overview

    def import_proctors_from_excel(self, context: SessionContext, source, filename: str = None,
                                   confirmed: bool = False) -> Dict[str, Any]:
        require_permission(context, 'import_rosters')
        if not confirmed:
            raise ConfirmationRequired(
                "سيتم استيراد توزيع الملاحظين وتحديث البيانات الحالية. يجب أن يحتوي ملف الإكسل على "
                "الأعمدة: 'اسم المراقب'، 'اللجنة'، 'المادة'، 'التاريخ'."
            )
        rows = read_workbook(source, filename)
        return self.import_proctor_assignments(context, parse_proctor_rows(rows), confirmed=True)

    def import_proctor_assignments(self, context: SessionContext, assignments: List[Dict[str, str]],
                                   confirmed: bool = False) -> Dict[str, Any]:
        """
        Assign proctors to envelopes from normalized distribution rows.

        A row resolves when its teacher name equals a user's name and its
        (committee name, subject, date) equals an existing envelope. Rows
        that do not resolve are only counted.

        Args:
            context (SessionContext): Must allow importing rosters
            assignments (List[Dict[str, str]]): teacherName, committeeName,
                subject and date per row
            confirmed (bool): Explicit confirmation from the operator

        Returns:
            Dict[str, Any]: Counts of updated and not found rows
        """
        require_permission(context, 'import_rosters')
        if not confirmed:
            raise ConfirmationRequired('سيتم استيراد توزيع الملاحظين وتحديث البيانات الحالية.')

        updated = {}
        not_found = 0
        for row in assignments:
            proctor = next((u for u in self.mirror.users if u.name.strip() == row['teacherName']), None)
            committee = next((c for c in self.mirror.committees if c.name.strip() == row['committeeName']), None)
            if proctor is None or committee is None:
                not_found += 1
                continue

            envelope = next(
                (e for e in self.mirror.envelopes
                 if e.committee_id == committee.id
                 and e.subject.strip() == row['subject']
                 and e.date == row['date']),
                None
            )
            if envelope is None:
                not_found += 1
                continue

            updated[envelope.id] = (envelope, proctor)

        if not updated:
            self.logger.info(f"Proctor import matched nothing ({not_found} rows not found)")
            return {
                'success': False,
                'updated': 0,
                'not_found': not_found,
                'message': 'لم يتم تحديث أي بيانات. تأكد من مطابقة الأسماء والتواريخ والمواد.'
            }

        operations = [
            ('update', models.ENVELOPES, envelope.id, {'proctorId': proctor.id, 'proctorName': proctor.name})
            for envelope, proctor in updated.values()
        ]
        self.db.commit_in_chunks(operations)
        for envelope, proctor in updated.values():
            envelope.proctor_id = proctor.id
            envelope.proctor_name = proctor.name

        row_count = len(assignments) - not_found
        message = f"تم تعيين {row_count} مراقب بنجاح!"
        if not_found:
            message += f" ملاحظة: لم يتم العثور على {not_found} صفوف."

        self.logger.info(f"Proctor import: {row_count} rows applied, {not_found} not found")
        return {
            'success': True,
            'updated': row_count,
            'not_found': not_found,
            'message': message
        }

    def get_committee_count(self) -> int:
        return len(self.mirror.committees)

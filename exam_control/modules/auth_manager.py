"""
Authentication Manager Module - Exam Control System
Author: Exam Control Team
Date: October 2026

This module handles identification and authorization for the exam control
office. Staff identify themselves by scanning their card, and every role-gated
operation receives an explicit SessionContext instead of reading a global
"current user".

Features:
- Login by scan code
- Switching the active user
- Role-based access control (RBAC)
- User renaming with reconciliation of denormalized names
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional
import logging

from exam_control.modules import models
from exam_control.modules.errors import PermissionDenied, ValidationError
from exam_control.modules.models import User, UserRole

SETUP_ADMIN = User(id='temp', name='Admin (Setup)', role=UserRole.ADMIN, barcode='ADM-000')

PERMISSIONS: Dict[UserRole, List[str]] = {
    UserRole.ADMIN: [
        'handover', 'take_attendance', 'view_alerts', 'view_reports',
        'manage_schedule', 'generate_envelopes', 'import_rosters',
        'delete_students', 'assign_proctors', 'manage_committees',
        'print_cards', 'manage_users'
    ],
    UserRole.TEACHER: [
        'handover', 'take_attendance'
    ],
    UserRole.COUNSELOR: [
        'take_attendance', 'view_alerts'
    ]
}

ROLE_TITLES = {
    UserRole.ADMIN: 'قائد المدرسة',
    UserRole.TEACHER: 'معلم',
    UserRole.COUNSELOR: 'مرشد طلابي'
}


@dataclass
class SessionContext:
    """Identity of whoever triggered an operation."""
    user: User
    started_at: datetime = field(default_factory=datetime.now)

    @property
    def role(self) -> UserRole:
        return self.user.role

    def has_permission(self, permission: str) -> bool:
        return permission in PERMISSIONS.get(self.role, [])


def require_permission(context: Optional[SessionContext], permission: str) -> None:
    """Raise PermissionDenied unless the context's role grants ``permission``."""
    if context is None or not context.has_permission(permission):
        raise PermissionDenied(permission=permission)


class AuthManager:
    """Resolves scan codes to users and builds session contexts."""

    def __init__(self, database_manager, state_mirror, envelope_manager=None):
        """
        Args:
            database_manager: Database manager instance
            state_mirror: In-memory mirror of the store
            envelope_manager: Used to reconcile proctor names after a rename
        """
        self.db = database_manager
        self.mirror = state_mirror
        self.envelope_manager = envelope_manager
        self.logger = logging.getLogger(__name__)

    def default_context(self) -> SessionContext:
        """
        Context used when nobody has logged in yet: the first provisioned user,
        or a placeholder setup admin while the user collection is empty.
        """
        if self.mirror.users:
            return SessionContext(self.mirror.users[0])
        return SessionContext(SETUP_ADMIN)

    def login_by_barcode(self, barcode: str) -> Optional[SessionContext]:
        """
        Resolve a scanned card to a session.

        Args:
            barcode (str): Scanned code, matched exactly

        Returns:
            SessionContext: Session for the user, or None if the code is unknown
        """
        barcode = barcode.strip()
        if not self.mirror.users and barcode == SETUP_ADMIN.barcode:
            self.logger.info("Setup admin logged in (no users provisioned)")
            return SessionContext(SETUP_ADMIN)

        user = self.mirror.find_user_by_barcode(barcode)
        if user is None:
            self.logger.warning(f"Failed login attempt for code: {barcode}")
            return None
        self.logger.info(f"User {user.id} logged in")
        return SessionContext(user)

    def switch_user(self, user_id: str) -> Optional[SessionContext]:
        user = self.mirror.get_user(user_id)
        return SessionContext(user) if user else None

    def context_for(self, user_id: Optional[str]) -> Optional[SessionContext]:
        """
        Rebuild the context of a stored session id. Without an id (nobody
        logged in yet) the default context is used; an id that no longer
        resolves to a user gives None.
        """
        if not user_id:
            return self.default_context()
        if user_id == SETUP_ADMIN.id:
            return None if self.mirror.users else SessionContext(SETUP_ADMIN)
        user = self.mirror.get_user(user_id)
        if user is None:
            self.logger.warning(f"Session refers to unknown user: {user_id}")
            return None
        return SessionContext(user)

    def rename_user(self, context: SessionContext, user_id: str, new_name: str) -> User:
        """
        Rename a user and refresh every denormalized copy of the name.
        Handover logs keep the name they were written with.
        """
        require_permission(context, 'manage_users')
        new_name = (new_name or '').strip()
        if not new_name:
            raise ValidationError('اسم المستخدم مطلوب')

        user = self.mirror.get_user(user_id)
        if user is None:
            raise ValidationError('المستخدم غير موجود', user_id=user_id)

        self.db.update_fields(models.USERS, user_id, {'name': new_name})
        user.name = new_name
        if self.envelope_manager is not None:
            self.envelope_manager.reconcile_proctor_names(user)
        return user

    def proctor_options(self) -> List[Dict[str, str]]:
        """Users selectable as proctors (teachers and admins)."""
        return [{'id': u.id, 'name': u.name} for u in self.mirror.proctors()]

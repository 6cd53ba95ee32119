# Exam Control System - App Package
"""
Main application package for the Exam Control System.
This package contains the business modules behind the Flask application.
"""

__version__ = "1.0.0"
__author__ = "Exam Control Team"
__description__ = "Flask-based exam control office: envelope handover, attendance and rosters"

# Import core components for easy access
from .modules.database_manager import DatabaseManager
from .modules.state_mirror import StateMirror
from .modules.auth_manager import AuthManager, SessionContext
from .modules.envelope_manager import EnvelopeLifecycleManager
from .modules.attendance_manager import AttendanceManager
from .modules.schedule_manager import ScheduleManager
from .modules.student_manager import StudentManager
from .modules.committee_manager import CommitteeManager
from .modules.qr_generator import QRGenerator
from .modules.report_generator import ReportGenerator

__all__ = [
    'DatabaseManager',
    'StateMirror',
    'AuthManager',
    'SessionContext',
    'EnvelopeLifecycleManager',
    'AttendanceManager',
    'ScheduleManager',
    'StudentManager',
    'CommitteeManager',
    'QRGenerator',
    'ReportGenerator'
]

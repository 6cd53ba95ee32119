# Exam Control System - Modules Package
"""
Core business logic modules for the Exam Control System.
"""

__version__ = "1.0.0"
__description__ = "Core modules for exam control functionality"

# Module descriptions
MODULES = {
    'models': 'Document dataclasses and enums',
    'errors': 'Error hierarchy shown to end users',
    'database_manager': 'Document store, conditional updates and write batches',
    'state_mirror': 'In-memory copy of every collection',
    'auth_manager': 'Login by scan code and role permissions',
    'envelope_manager': 'Envelope handover lifecycle and handover log',
    'attendance_manager': 'Attendance per student and exam, absence alerts',
    'schedule_manager': 'Exam schedule and envelope generation',
    'roster_importer': 'Excel roster parsing',
    'student_manager': 'Student roster import and deletion',
    'committee_manager': 'Committees and proctor distribution',
    'qr_generator': 'QR identifier cards',
    'report_generator': 'Handover and absence reports'
}

def get_module_info():
    """Get information about available modules"""
    return MODULES

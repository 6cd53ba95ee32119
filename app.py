"""
Exam Control System - Main Application
Author: Exam Control Team
Date: October 2026

This module serves as the main entry point for the Flask exam control system.
It builds the managers, wires them together and exposes them as JSON routes
for the handover desk, the attendance screen and the administration pages.

Features:
- Login by scanning a staff card
- Envelope handover (check-out / check-in)
- Attendance taking and absence alerts
- Exam schedule and envelope generation
- Committee, proctor and student roster administration
- QR card and report downloads
"""

import base64
import io
import logging
from functools import wraps

from flask import Flask, current_app, jsonify, request, send_file, session
from werkzeug.exceptions import HTTPException
from werkzeug.utils import secure_filename

from config import init_config
from exam_control.modules.attendance_manager import AttendanceManager
from exam_control.modules.auth_manager import ROLE_TITLES, PERMISSIONS, AuthManager, require_permission
from exam_control.modules.committee_manager import CommitteeManager
from exam_control.modules.database_manager import DatabaseManager
from exam_control.modules.envelope_manager import EnvelopeLifecycleManager
from exam_control.modules.errors import ExamControlError, ImportParseFailure, ValidationError
from exam_control.modules.qr_generator import QRGenerator
from exam_control.modules.report_generator import ReportGenerator
from exam_control.modules.roster_importer import allowed_file
from exam_control.modules.schedule_manager import ScheduleManager
from exam_control.modules.state_mirror import StateMirror
from exam_control.modules.student_manager import StudentManager

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
)
logger = logging.getLogger(__name__)


def build_services(app):
    """Create every manager for the configured store and load the mirror."""
    db_manager = DatabaseManager(app.config['DATABASE_PATH'], batch_limit=app.config['BATCH_LIMIT'])
    if app.config['SEED_DEMO_DATA']:
        db_manager.seed_demo_data()

    mirror = StateMirror(db_manager)
    envelope_manager = EnvelopeLifecycleManager(db_manager, mirror)
    services = {
        'db': db_manager,
        'mirror': mirror,
        'envelopes': envelope_manager,
        'auth': AuthManager(db_manager, mirror, envelope_manager),
        'attendance': AttendanceManager(db_manager, mirror),
        'schedule': ScheduleManager(db_manager, mirror, code_attempts=app.config['ENVELOPE_CODE_ATTEMPTS']),
        'students': StudentManager(db_manager, mirror),
        'committees': CommitteeManager(db_manager, mirror, envelope_manager),
        'qr': QRGenerator(app.config['EXPORTS_FOLDER'], app.config['QR_FONT_PATH']),
        'reports': ReportGenerator(mirror, app.config['EXPORTS_FOLDER'])
    }

    if not mirror.refresh():
        logger.error(f"Starting without data: {mirror.connection_error}")
    return services


def service(name):
    return current_app.extensions['exam_control'][name]


def current_context():
    """Session context of the logged in user."""
    return service('auth').context_for(session.get('user_id'))


def login_required(f):
    """Decorator to require login for protected routes"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if 'user_id' not in session or service('auth').context_for(session['user_id']) is None:
            session.pop('user_id', None)
            return jsonify({'success': False, 'message': 'الرجاء تسجيل الدخول أولاً', 'error_type': 'login_required'}), 401
        return f(*args, **kwargs)
    return decorated_function


def request_data():
    return request.get_json(silent=True) or {}


def uploaded_workbook():
    """Bytes and a safe file name of the uploaded workbook."""
    file = request.files.get('file')
    if file is None or not file.filename:
        raise ValidationError('لم يتم اختيار ملف')
    if not allowed_file(file.filename):
        raise ImportParseFailure('نوع الملف غير مدعوم. استخدم ملف Excel (xlsx/xls).', filename=file.filename)

    extension = file.filename.rsplit('.', 1)[1].lower()
    filename = secure_filename(file.filename)
    if not filename.lower().endswith(f'.{extension}'):
        filename = f"upload.{extension}"
    return file.read(), filename


def create_app(config_name=None, **overrides):
    """
    Application factory.

    Args:
        config_name (str): development, testing or production
        **overrides: Flask config values applied after the config class

    Returns:
        Flask: The configured application
    """
    app = Flask(__name__)
    init_config(app, config_name)
    app.config.update(overrides)
    app.extensions['exam_control'] = build_services(app)

    @app.errorhandler(ExamControlError)
    def handle_exam_control_error(error):
        logger.warning(f"{error.error_type}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        if isinstance(error, HTTPException):
            return error
        logger.exception(f"Unhandled error: {str(error)}")
        return jsonify({
            'success': False,
            'message': 'حدث خطأ غير متوقع',
            'error_type': 'system_error'
        }), 500

    # Session

    @app.route('/api/login', methods=['POST'])
    def login():
        """Login by scanning a staff card"""
        code = str(request_data().get('code', '')).strip()
        if not code:
            raise ValidationError('الرجاء مسح البطاقة')

        context = service('auth').login_by_barcode(code)
        if context is None:
            return jsonify({'success': False, 'message': 'البطاقة غير معروفة', 'error_type': 'unknown_user'}), 401

        session['user_id'] = context.user.id
        return jsonify({
            'success': True,
            'user': context.user.to_dict(),
            'role_title': ROLE_TITLES[context.role]
        })

    @app.route('/api/logout', methods=['POST'])
    @login_required
    def logout():
        user_id = session.pop('user_id', None)
        logger.info(f"User {user_id} logged out")
        return jsonify({'success': True})

    @app.route('/api/switch-user', methods=['POST'])
    @login_required
    def switch_user():
        require_permission(current_context(), 'manage_users')
        context = service('auth').switch_user(request_data().get('user_id', ''))
        if context is None:
            raise ValidationError('المستخدم غير موجود')
        session['user_id'] = context.user.id
        return jsonify({'success': True, 'user': context.user.to_dict()})

    @app.route('/api/dashboard')
    @login_required
    def dashboard():
        """Dashboard counts for the logged in user"""
        context = current_context()
        return jsonify({
            'success': True,
            'user': context.user.to_dict(),
            'role_title': ROLE_TITLES[context.role],
            'permissions': PERMISSIONS[context.role],
            'summary': service('mirror').dashboard_summary()
        })

    @app.route('/api/refresh', methods=['POST'])
    @login_required
    def refresh():
        mirror = service('mirror')
        live = mirror.refresh()
        return jsonify({'success': live, 'is_live': live, 'message': mirror.connection_error})

    # Handover desk

    @app.route('/api/handover', methods=['POST'])
    @login_required
    def handover():
        """Check an envelope out to a proctor or back in"""
        data = request_data()
        result = service('envelopes').handover(
            current_context(),
            str(data.get('teacher_code', '')).strip(),
            str(data.get('envelope_code', '')).strip(),
            data.get('action', 'CHECK_OUT')
        )
        return jsonify(result)

    @app.route('/api/handover/logs')
    @login_required
    def handover_logs():
        limit = request.args.get('limit', 8, type=int)
        return jsonify({'success': True, 'logs': service('envelopes').recent_logs(limit)})

    @app.route('/api/envelopes')
    @login_required
    def list_envelopes():
        return jsonify({'success': True, 'envelopes': [e.to_dict() for e in service('mirror').envelopes]})

    @app.route('/api/envelopes/<envelope_id>/proctor', methods=['POST'])
    @login_required
    def assign_proctor(envelope_id):
        envelope = service('envelopes').assign_proctor(
            current_context(), envelope_id, request_data().get('proctor_id')
        )
        return jsonify({'success': True, 'envelope': envelope.to_dict()})

    # Attendance

    @app.route('/api/attendance/<exam_id>')
    @login_required
    def attendance_roster(exam_id):
        require_permission(current_context(), 'take_attendance')
        roster = service('attendance').exam_roster(exam_id, request.args.get('q', ''))
        roster.pop('candidates', None)
        return jsonify(dict(roster, success=True))

    @app.route('/api/attendance', methods=['POST'])
    @login_required
    def set_attendance():
        data = request_data()
        attendance = service('attendance')
        if 'present' in data:
            record = attendance.set_attendance(
                current_context(), data.get('student_id', ''), data.get('exam_id', ''), bool(data['present'])
            )
        else:
            record = attendance.toggle_attendance(
                current_context(), data.get('student_id', ''), data.get('exam_id', '')
            )
        return jsonify({'success': True, 'record': record.to_dict()})

    @app.route('/api/attendance/<exam_id>/mark-all', methods=['POST'])
    @login_required
    def mark_all_present(exam_id):
        """Mark every listed student without a record as present"""
        data = request_data()
        attendance = service('attendance')
        if service('mirror').get_envelope(exam_id) is None:
            raise ValidationError('الاختبار غير موجود', exam_id=exam_id)
        roster = attendance.exam_roster(exam_id, data.get('q', ''))
        result = attendance.mark_all_present(
            current_context(), roster['exam']['id'], roster['candidates'], bool(data.get('confirmed'))
        )
        return jsonify(result)

    @app.route('/api/alerts')
    @login_required
    def absence_alerts():
        require_permission(current_context(), 'view_alerts')
        return jsonify({'success': True, 'alerts': service('attendance').absence_alerts()})

    # Schedule

    @app.route('/api/schedule', methods=['GET', 'POST'])
    @login_required
    def schedule():
        if request.method == 'GET':
            return jsonify({'success': True, 'schedule': [i.to_dict() for i in service('mirror').schedule]})

        data = request_data()
        item = service('schedule').add_schedule_item(
            current_context(),
            data.get('subject', ''),
            data.get('grade', ''),
            data.get('date', ''),
            data.get('period', 'First'),
            data.get('startTime')
        )
        return jsonify({'success': True, 'item': item.to_dict()}), 201

    @app.route('/api/schedule/<item_id>', methods=['DELETE'])
    @login_required
    def delete_schedule_item(item_id):
        service('schedule').delete_schedule_item(current_context(), item_id)
        return jsonify({'success': True})

    @app.route('/api/schedule/generate', methods=['POST'])
    @login_required
    def generate_envelopes():
        result = service('schedule').generate_envelopes(
            current_context(), confirmed=bool(request_data().get('confirmed'))
        )
        return jsonify(result)

    # Committees and proctors

    @app.route('/api/committees', methods=['GET', 'POST'])
    @login_required
    def committees():
        manager = service('committees')
        if request.method == 'GET':
            return jsonify({
                'success': True,
                'committees': manager.committee_overview(request.args.get('proctor_id')),
                'proctors': service('auth').proctor_options()
            })

        data = request_data()
        committee = manager.create_committee(current_context(), data.get('name', ''), data.get('location', ''))
        return jsonify({'success': True, 'committee': committee.to_dict()}), 201

    @app.route('/api/committees/<committee_id>/rename', methods=['POST'])
    @login_required
    def rename_committee(committee_id):
        committee = service('committees').rename_committee(
            current_context(), committee_id, request_data().get('name', '')
        )
        return jsonify({'success': True, 'committee': committee.to_dict()})

    @app.route('/api/proctors/import', methods=['POST'])
    @login_required
    def import_proctors():
        content, filename = uploaded_workbook()
        confirmed = request.form.get('confirmed', '').lower() in ['true', 'on', '1']
        result = service('committees').import_proctors_from_excel(current_context(), content, filename, confirmed)
        return jsonify(result)

    @app.route('/api/users/<user_id>/rename', methods=['POST'])
    @login_required
    def rename_user(user_id):
        user = service('auth').rename_user(current_context(), user_id, request_data().get('name', ''))
        return jsonify({'success': True, 'user': user.to_dict()})

    # Students

    @app.route('/api/students')
    @login_required
    def list_students():
        students = service('students').sorted_students()
        return jsonify({'success': True, 'students': [s.to_dict() for s in students], 'total': len(students)})

    @app.route('/api/students/import', methods=['POST'])
    @login_required
    def import_students():
        content, filename = uploaded_workbook()
        result = service('students').import_students_from_excel(current_context(), content, filename)
        return jsonify(result)

    @app.route('/api/students/<student_id>', methods=['DELETE'])
    @login_required
    def delete_student(student_id):
        service('students').delete_student(current_context(), student_id, bool(request_data().get('confirmed')))
        return jsonify({'success': True})

    @app.route('/api/students/delete-all', methods=['POST'])
    @login_required
    def delete_all_students():
        data = request_data()
        result = service('students').delete_all_students(
            current_context(), bool(data.get('confirmed')), data.get('phrase', '')
        )
        return jsonify(result)

    # Cards and reports

    @app.route('/api/cards/teacher/<user_id>.png')
    @login_required
    def teacher_card(user_id):
        require_permission(current_context(), 'print_cards')
        user = service('mirror').get_user(user_id)
        if user is None:
            raise ValidationError('المستخدم غير موجود')
        card = service('qr').generate_teacher_card(user)
        return send_file(io.BytesIO(base64.b64decode(card['image_base64'])),
                         mimetype='image/png', download_name=card['filename'])

    @app.route('/api/cards/envelope/<envelope_id>.png')
    @login_required
    def envelope_card(envelope_id):
        require_permission(current_context(), 'print_cards')
        mirror = service('mirror')
        envelope = mirror.get_envelope(envelope_id)
        if envelope is None:
            raise ValidationError('المظروف غير موجود')
        committee = mirror.get_committee(envelope.committee_id)
        card = service('qr').generate_envelope_card(envelope, committee.name if committee else None)
        return send_file(io.BytesIO(base64.b64decode(card['image_base64'])),
                         mimetype='image/png', download_name=card['filename'])

    @app.route('/api/cards/sheet.pdf')
    @login_required
    def cards_sheet():
        """Printable sheet with every teacher and envelope card"""
        require_permission(current_context(), 'print_cards')
        mirror = service('mirror')
        qr = service('qr')
        names = {c.id: c.name for c in mirror.committees}
        cards = qr.batch_generate_cards(mirror.proctors(), mirror.envelopes, names)
        sheet = qr.create_cards_pdf(cards['cards'])
        return send_file(sheet['path'], mimetype='application/pdf', as_attachment=True,
                         download_name=sheet['filename'])

    @app.route('/api/reports/<report_type>')
    @login_required
    def download_report(report_type):
        require_permission(current_context(), 'view_reports')
        output_format = request.args.get('format', current_app.config['REPORTS_DEFAULT_FORMAT'])
        report = service('reports').generate_report(report_type, output_format)
        return send_file(report['filepath'], as_attachment=True, download_name=report['filename'])

    @app.route('/api/reports/cleanup', methods=['POST'])
    @login_required
    def cleanup_reports():
        """Delete exported files older than the retention period"""
        require_permission(current_context(), 'view_reports')
        result = service('reports').delete_old_reports(current_app.config['REPORTS_RETENTION_DAYS'])
        return jsonify(dict(result, success=True))

    return app


if __name__ == '__main__':
    # Run the application
    create_app().run(debug=True, host='0.0.0.0', port=5000)

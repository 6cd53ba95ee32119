"""
Report Generator Module - Exam Control System
Author: Exam Control Team
Date: October 2026

This module exports the two reports of the exam control office: the full
handover log and the list of absent students per exam. Reports are written
as Excel or CSV files with pandas, or rendered to HTML with jinja2.

Features:
- Handover log report
- Absence report joined to students and exams
- Excel, CSV and HTML output
- Old report cleanup
"""

import logging
import os
from datetime import datetime, timedelta
from typing import Any, Dict, List

import pandas as pd
from jinja2 import Template

from exam_control.modules.errors import ValidationError
from exam_control.modules.models import AttendanceStatus, HandoverType

HANDOVER_TYPE_LABELS = {
    HandoverType.CHECK_OUT: 'تسليم لجنة',
    HandoverType.CHECK_IN: 'استلام من لجنة'
}


class ReportGenerator:
    """Builds report data from the mirror and writes it to files."""

    def __init__(self, state_mirror, output_dir: str = 'exports'):
        """
        Args:
            state_mirror: In-memory mirror of the store
            output_dir (str): Where report files are written
        """
        self.mirror = state_mirror
        self.logger = logging.getLogger(__name__)
        self.output_dir = str(output_dir)
        self.supported_formats = ['excel', 'csv', 'html']

        self.report_templates = {
            'handover_log': self._get_handover_log_template(),
            'absences': self._get_absences_template()
        }

    def get_report_data(self, report_type: str) -> Dict[str, Any]:
        if report_type == 'handover_log':
            return self._get_handover_log_data()
        if report_type == 'absences':
            return self._get_absence_data()
        raise ValidationError(f'Unknown report type: {report_type}')

    def _get_handover_log_data(self) -> Dict[str, Any]:
        records = [
            {
                'timestamp': log.timestamp,
                'type': HANDOVER_TYPE_LABELS[log.type],
                'teacher': log.teacher_name,
                'subject': log.envelope_subject,
                'committee': log.committee_name
            }
            for log in self.mirror.logs
        ]
        statistics = {
            'total': len(records),
            'check_outs': sum(1 for log in self.mirror.logs if log.type == HandoverType.CHECK_OUT),
            'check_ins': sum(1 for log in self.mirror.logs if log.type == HandoverType.CHECK_IN)
        }
        return {'records': records, 'statistics': statistics}

    def _get_absence_data(self) -> Dict[str, Any]:
        records = []
        for record in self.mirror.attendance:
            if record.status != AttendanceStatus.ABSENT:
                continue
            student = self.mirror.get_student(record.student_id)
            exam = self.mirror.get_envelope(record.exam_id)
            committee = self.mirror.get_committee(exam.committee_id) if exam else None
            records.append({
                'student': student.name if student else record.student_id,
                'grade': student.grade if student else '',
                'class': student.class_name if student else '',
                'subject': exam.subject if exam else record.exam_id,
                'date': exam.date if exam else '',
                'committee': committee.name if committee else '',
                'parent_phone': student.parent_phone if student else '',
                'timestamp': record.timestamp
            })
        return {'records': records, 'statistics': {'total': len(records)}}

    def generate_report(self, report_type: str, output_format: str = 'excel') -> Dict[str, Any]:
        """
        Generate a report file.

        Args:
            report_type (str): handover_log or absences
            output_format (str): excel, csv or html

        Returns:
            Dict[str, Any]: File name, path and size
        """
        if output_format not in self.supported_formats:
            raise ValidationError(f'Unsupported output format: {output_format}')

        data = self.get_report_data(report_type)
        os.makedirs(self.output_dir, exist_ok=True)
        stamp = datetime.now().strftime('%Y%m%d_%H%M%S')

        if output_format == 'excel':
            filepath = os.path.join(self.output_dir, f"{report_type}_{stamp}.xlsx")
            with pd.ExcelWriter(filepath, engine='openpyxl') as writer:
                pd.DataFrame(data['records']).to_excel(writer, sheet_name='Data', index=False)
                pd.DataFrame([data['statistics']]).to_excel(writer, sheet_name='Statistics', index=False)
        elif output_format == 'csv':
            filepath = os.path.join(self.output_dir, f"{report_type}_{stamp}.csv")
            pd.DataFrame(data['records']).to_csv(filepath, index=False, encoding='utf-8-sig')
        else:
            filepath = os.path.join(self.output_dir, f"{report_type}_{stamp}.html")
            with open(filepath, 'w', encoding='utf-8') as f:
                f.write(self.render_html(report_type, data))

        self.logger.info(f"Report generated successfully: {filepath}")
        return {
            'success': True,
            'filename': os.path.basename(filepath),
            'filepath': filepath,
            'format': output_format,
            'records': len(data['records']),
            'size': os.path.getsize(filepath)
        }

    def render_html(self, report_type: str, data: Dict[str, Any] = None) -> str:
        data = data or self.get_report_data(report_type)
        template = Template(self.report_templates[report_type])
        return template.render(
            generation_date=datetime.now().strftime('%Y-%m-%d %H:%M:%S'),
            records=data['records'],
            stats=data['statistics']
        )

    def _get_handover_log_template(self) -> str:
        return """
        <h2>سجل الاستلام والتسليم</h2>
        <p>{{ generation_date }}</p>
        <ul>
            <li>تسليم: {{ stats.check_outs }}</li>
            <li>استلام: {{ stats.check_ins }}</li>
        </ul>
        <table>
            <tbody>
                {% for record in records %}
                <tr>
                    <td>{{ record.timestamp }}</td>
                    <td>{{ record.type }}</td>
                    <td>{{ record.teacher }}</td>
                    <td>{{ record.subject }}</td>
                    <td>{{ record.committee }}</td>
                </tr>
                {% endfor %}
            </tbody>
        </table>
        """

    def _get_absences_template(self) -> str:
        return """
        <h2>تقرير الغياب</h2>
        <p>{{ generation_date }} - {{ stats.total }}</p>
        <table>
            <tbody>
                {% for record in records %}
                <tr>
                    <td>{{ record.student }}</td>
                    <td>{{ record.subject }}</td>
                    <td>{{ record.committee }}</td>
                    <td>{{ record.parent_phone }}</td>
                </tr>
                {% endfor %}
            </tbody>
        </table>
        """

    def get_available_reports(self) -> List[Dict[str, str]]:
        return [
            {'type': 'handover_log', 'name': 'سجل الاستلام والتسليم'},
            {'type': 'absences', 'name': 'تقرير الغياب'}
        ]

    def delete_old_reports(self, days_old: int = 30) -> Dict[str, Any]:
        """Delete report files older than ``days_old`` days."""
        if not os.path.exists(self.output_dir):
            return {'deleted_count': 0, 'deleted_files': []}

        cutoff_date = datetime.now() - timedelta(days=days_old)
        deleted_files = []
        for filename in os.listdir(self.output_dir):
            filepath = os.path.join(self.output_dir, filename)
            if os.path.isfile(filepath) and datetime.fromtimestamp(os.path.getmtime(filepath)) < cutoff_date:
                os.remove(filepath)
                deleted_files.append(filename)
                self.logger.info(f"Deleted old report file: {filename}")

        return {'deleted_count': len(deleted_files), 'deleted_files': deleted_files}

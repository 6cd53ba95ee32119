"""
Roster Importer Module - Exam Control System

Reads student rosters and proctor distributions from Excel workbooks with
pandas and normalizes each row. Headers are accepted in Arabic or English.
Only the first sheet of a workbook is read.
"""

from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional
import io
import logging
import math
import numbers
import os
import random

import pandas as pd

from exam_control.modules.errors import ImportParseFailure

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {'xlsx', 'xls'}

# Day zero of Excel serial dates (includes the 1900 leap-year bug offset)
EXCEL_EPOCH = datetime(1899, 12, 30)

STUDENT_COLUMNS = {
    'name': ['اسم الطالب', 'Name'],
    'seatNumber': ['رقم الجلوس', 'Seat Number'],
    'committee': ['اللجنة', 'Committee'],
    'stage': ['المرحلة', 'Stage'],
    'grade': ['الصف', 'Grade'],
    'class': ['الفصل', 'Class'],
    'nationalId': ['رقم الهوية', 'National ID'],
    'parentPhone': ['جوال ولي الأمر', 'Parent Phone'],
}

PROCTOR_COLUMNS = {
    'teacherName': ['اسم المراقب', 'المراقب', 'Teacher'],
    'committeeName': ['اللجنة', 'Committee'],
    'subject': ['المادة', 'Subject'],
    'date': ['التاريخ', 'Date'],
}

DEFAULT_STUDENT_NAME = 'غير محدد'
DEFAULT_GRADE = 'عام'


def allowed_file(filename: str) -> bool:
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in ALLOWED_EXTENSIONS


def read_workbook(source, filename: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Read the first sheet of a workbook into row dicts keyed by header.

    Args:
        source: Path, bytes or binary file object
        filename (str): Original file name, used to check the extension

    Returns:
        List[Dict[str, Any]]: One dict per row, empty cells as None

    Raises:
        ImportParseFailure: The file is not a readable .xlsx/.xls workbook
    """
    name = filename or (source if isinstance(source, (str, os.PathLike)) else None)
    if name is not None and not allowed_file(str(name)):
        raise ImportParseFailure('نوع الملف غير مدعوم. استخدم ملف Excel (xlsx/xls).', filename=str(name))

    if isinstance(source, (bytes, bytearray)):
        source = io.BytesIO(source)

    try:
        df = pd.read_excel(source, sheet_name=0)
    except Exception as e:
        logger.error(f"Import Error: {str(e)}")
        raise ImportParseFailure(details=str(e)) from e

    df.columns = [str(column).strip() for column in df.columns]
    df = df.dropna(how='all')
    return df.astype(object).where(pd.notna(df), None).to_dict('records')


def clean_cell(value: Any) -> Optional[str]:
    """Cell value as trimmed text; whole floats lose their '.0'."""
    if value is None:
        return None
    if isinstance(value, float):
        if math.isnan(value):
            return None
        if value.is_integer():
            value = int(value)
    text = str(value).strip()
    return text or None


def _pick(row: Dict[str, Any], aliases: List[str]) -> Any:
    for alias in aliases:
        value = row.get(alias)
        if value is not None and not (isinstance(value, float) and math.isnan(value)):
            return value
    return None


def excel_date(value: Any) -> Optional[str]:
    """
    Normalize a date cell to YYYY-MM-DD. Numbers are Excel serial dates
    counted in days from 1899-12-30; text is kept as written.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, numbers.Real):
        if math.isnan(value):
            return None
        return (EXCEL_EPOCH + timedelta(days=float(value))).date().isoformat()
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return clean_cell(value)


def parse_student_rows(rows: List[Dict[str, Any]], rng=random) -> List[Dict[str, Any]]:
    """
    Normalize roster rows into student documents.
    Missing names, grades and classes get placeholders; a missing national id
    gets a random one.
    """
    students = []
    for row in rows:
        values = {key: clean_cell(_pick(row, aliases)) for key, aliases in STUDENT_COLUMNS.items()}
        students.append({
            'name': values['name'] or DEFAULT_STUDENT_NAME,
            'seatNumber': values['seatNumber'],
            'committee': values['committee'],
            'stage': values['stage'],
            'grade': values['grade'] or DEFAULT_GRADE,
            'class': values['class'] or DEFAULT_GRADE,
            'nationalId': values['nationalId'] or str(rng.randint(100000000, 999999999)),
            'parentPhone': values['parentPhone'] or ''
        })
    return students


def parse_proctor_rows(rows: List[Dict[str, Any]]) -> List[Dict[str, Optional[str]]]:
    """
    Normalize proctor distribution rows. Rows missing any of the four
    fields are dropped here and never counted afterwards.
    """
    assignments = []
    for row in rows:
        assignment = {
            'teacherName': clean_cell(_pick(row, PROCTOR_COLUMNS['teacherName'])),
            'committeeName': clean_cell(_pick(row, PROCTOR_COLUMNS['committeeName'])),
            'subject': clean_cell(_pick(row, PROCTOR_COLUMNS['subject'])),
            'date': excel_date(_pick(row, PROCTOR_COLUMNS['date']))
        }
        if all(assignment.values()):
            assignments.append(assignment)
    return assignments

"""
Errors Module - Exam Control System

Exception hierarchy shared by every manager. Each error carries a machine
readable ``error_type`` and a short Arabic message that the HTTP layer shows
to the end user as-is. Nothing here is retried automatically.
"""

from typing import Any, Dict, Optional


class ExamControlError(Exception):
    """Base class for all errors surfaced to the end user."""

    error_type = 'system_error'
    default_message = 'حدث خطأ غير متوقع'
    status_code = 400

    def __init__(self, message: Optional[str] = None, **details: Any):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'success': False,
            'message': self.message,
            'error_type': self.error_type
        }
        if self.details:
            result['details'] = self.details
        return result


class InvalidTeacherCode(ExamControlError):
    error_type = 'invalid_teacher_code'
    default_message = 'باركود المعلم غير صحيح'


class InvalidEnvelopeCode(ExamControlError):
    error_type = 'invalid_envelope_code'
    default_message = 'باركود المظروف غير صحيح'


class AlreadyHandedOver(ExamControlError):
    error_type = 'already_handed_over'
    default_message = 'المظروف تم تسليمه مسبقاً!'


class AlreadyInStorage(ExamControlError):
    error_type = 'already_in_storage'
    default_message = 'المظروف موجود في المخزن بالفعل'


class StoreWriteFailure(ExamControlError):
    """Wraps any error raised by the underlying document store."""

    error_type = 'store_write_failure'
    default_message = 'خطأ في الاتصال بقاعدة البيانات'
    status_code = 500


class BatchLimitExceeded(StoreWriteFailure):
    error_type = 'batch_limit_exceeded'
    default_message = 'تجاوز عدد العمليات الحد المسموح في الدفعة الواحدة'


class ImportParseFailure(ExamControlError):
    error_type = 'import_parse_failure'
    default_message = 'حدث خطأ أثناء الاستيراد. تأكد من صحة الملف.'


class ValidationError(ExamControlError):
    error_type = 'validation_error'
    default_message = 'الرجاء تعبئة البيانات الأساسية'


class ConfirmationRequired(ExamControlError):
    error_type = 'confirmation_required'
    default_message = 'إلغاء العملية.'


class PermissionDenied(ExamControlError):
    error_type = 'permission_denied'
    default_message = 'ليس لديك صلاحية لتنفيذ هذه العملية'
    status_code = 403

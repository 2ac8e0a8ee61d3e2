# backend/app/services/fields.py
"""
Custom field 검증

validate_field()는 순수 함수입니다. (DB 접근/부수 효과 없음)
required 체크는 관리자가 아닌 제출자에게만 적용됩니다.
"""

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional

from app.core.errors import ValidationError
from app.models.task import DateField, PhoneField, parse_iso_datetime

# '+' 다음 국가번호(0 불가) 포함 최대 15자리 (E.164)
PHONE_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")


@dataclass(frozen=True)
class FieldCheck:
    ok: bool
    message: Optional[str] = None


def validate_field(field, *, is_admin: bool = False) -> FieldCheck:
    if field.is_empty():
        if field.required and not is_admin:
            return FieldCheck(False, f"{field.label} is required")
        return FieldCheck(True)

    if isinstance(field, PhoneField):
        if not PHONE_PATTERN.match(str(field.value).strip()):
            return FieldCheck(False, f"{field.label} must be a valid phone number")

    elif isinstance(field, DateField):
        try:
            parse_iso_datetime(field.value)
        except (TypeError, ValueError):
            return FieldCheck(False, f"{field.label} must be a valid date")

    # string / file: 내용 검증 없음
    return FieldCheck(True)


def ensure_valid_fields(fields: Iterable, *, is_admin: bool = False) -> None:
    """
    모든 필드를 검사해서 하나라도 실패하면 ValidationError.
    message에는 첫 번째 실패, errors에는 전체 실패 목록이 담깁니다.
    """
    errors: List[str] = []
    for field in fields:
        check = validate_field(field, is_admin=is_admin)
        if not check.ok:
            errors.append(check.message)

    if errors:
        raise ValidationError(errors[0], errors=errors)

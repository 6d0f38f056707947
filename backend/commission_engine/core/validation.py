"""
Common validation utilities for commission request DTOs.

Validators collect every problem into a ValidationResult so callers get all
field errors at once; `raise_if_invalid` converts a failed result into the
engine's ValidationError.
"""

import logging
import re
import uuid
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from commission_engine.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

REFERENCE_MONTH_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


class ValidationResult:
    """Container for validation results."""

    def __init__(self):
        self.errors: List[str] = []
        self.is_valid: bool = True
        self.cleaned_data: Dict[str, Any] = {}
        self.first_field: Optional[str] = None

    def add_error(self, message: str, field: Optional[str] = None):
        """Add validation error."""
        error_msg = f"{field}: {message}" if field else message
        self.errors.append(error_msg)
        if self.is_valid:
            self.first_field = field
        self.is_valid = False
        logger.debug(f"Validation error: {error_msg}")

    def raise_if_invalid(self) -> None:
        if not self.is_valid:
            raise ValidationError(
                "; ".join(self.errors), field=self.first_field, errors=self.errors
            )


class BaseValidator:
    """Field-level validation helpers shared by the request DTOs."""

    @staticmethod
    def validate_required_field(
        value: Any, field_name: str, result: ValidationResult
    ) -> bool:
        """Validate that a required field is present and not empty."""
        if (
            value is None
            or value == ""
            or (isinstance(value, str) and value.strip() == "")
        ):
            result.add_error(f"{field_name} é obrigatório", field_name)
            return False
        return True

    @staticmethod
    def validate_uuid(
        value: Any, field_name: str, result: ValidationResult, required: bool = True
    ) -> Optional[str]:
        """Validate an identifier and return it in canonical string form."""
        if value is None or value == "":
            if required:
                result.add_error(f"{field_name} é obrigatório", field_name)
            return None
        try:
            return str(uuid.UUID(str(value)))
        except (ValueError, AttributeError, TypeError):
            result.add_error("Identificador inválido", field_name)
            return None

    @staticmethod
    def validate_date(
        value: Any, field_name: str, result: ValidationResult
    ) -> Optional[date]:
        """Validate and convert date field."""
        if value is None or value == "":
            return None

        if isinstance(value, datetime):
            return value.date()

        if isinstance(value, date):
            return value

        if isinstance(value, str):
            try:
                return datetime.strptime(value[:10], "%Y-%m-%d").date()
            except ValueError:
                result.add_error("Data inválida. Use formato YYYY-MM-DD", field_name)
                return None

        result.add_error("Formato de data inválido", field_name)
        return None

    @staticmethod
    def validate_decimal(
        value: Any,
        field_name: str,
        result: ValidationResult,
        min_value: Optional[Decimal] = None,
        max_value: Optional[Decimal] = None,
        exclusive_min: bool = False,
        max_places: Optional[int] = 2,
    ) -> Optional[Decimal]:
        """Validate and convert a monetary or percentage value.

        Values with more than `max_places` decimals are rejected; accepted
        values are returned at exactly `max_places` decimals.
        """
        if value is None or value == "":
            return None

        if isinstance(value, float):
            result.add_error("Valor monetário deve ser texto ou Decimal", field_name)
            return None

        if isinstance(value, Decimal):
            decimal_value = value
        else:
            try:
                if isinstance(value, str):
                    value = value.strip().replace(" ", "")
                    # Brazilian format (1.234,56 -> 1234.56)
                    if "," in value and "." in value:
                        value = value.replace(".", "").replace(",", ".")
                    elif "," in value:
                        value = value.replace(",", ".")
                decimal_value = Decimal(str(value))
            except (InvalidOperation, TypeError, ValueError):
                result.add_error("Valor inválido. Use formato numérico", field_name)
                return None

        if not decimal_value.is_finite():
            result.add_error("Valor inválido. Use formato numérico", field_name)
            return None

        if max_places is not None:
            step = Decimal(1).scaleb(-max_places)
            try:
                rounded = decimal_value.quantize(step)
            except InvalidOperation:
                result.add_error("Valor inválido. Use formato numérico", field_name)
                return None
            if rounded != decimal_value:
                result.add_error(
                    f"Valor deve ter no máximo {max_places} casas decimais", field_name
                )
                return None
            decimal_value = rounded

        if min_value is not None:
            if exclusive_min and decimal_value <= min_value:
                result.add_error(f"Valor deve ser maior que {min_value}", field_name)
                return None
            if not exclusive_min and decimal_value < min_value:
                result.add_error(
                    f"Valor deve ser maior ou igual a {min_value}", field_name
                )
                return None

        if max_value is not None and decimal_value > max_value:
            result.add_error(f"Valor deve ser menor ou igual a {max_value}", field_name)
            return None

        return decimal_value

    @staticmethod
    def validate_integer(
        value: Any,
        field_name: str,
        result: ValidationResult,
        min_value: Optional[int] = None,
    ) -> Optional[int]:
        """Validate and convert integer field."""
        if value is None or value == "":
            return None

        if isinstance(value, bool):
            result.add_error("Valor deve ser um número inteiro", field_name)
            return None

        try:
            int_value = int(value)
        except (ValueError, TypeError):
            result.add_error("Valor deve ser um número inteiro", field_name)
            return None

        if min_value is not None and int_value < min_value:
            result.add_error(f"Valor deve ser maior ou igual a {min_value}", field_name)
            return None

        return int_value

    @staticmethod
    def validate_choice(
        value: Any,
        field_name: str,
        result: ValidationResult,
        allowed_values: List[str],
    ) -> Optional[str]:
        """Validate an enumerated string (case-insensitive)."""
        if value is None or value == "":
            return None
        normalized = str(value).strip().upper()
        if normalized not in allowed_values:
            result.add_error(
                f"Valor deve ser um dos: {', '.join(allowed_values)}", field_name
            )
            return None
        return normalized

    @staticmethod
    def validate_reference_month(
        value: Any, field_name: str, result: ValidationResult
    ) -> Optional[str]:
        """Validate a YYYY-MM reference month."""
        if value is None or value == "":
            result.add_error(f"{field_name} é obrigatório", field_name)
            return None
        text = str(value).strip()
        if not REFERENCE_MONTH_PATTERN.match(text):
            result.add_error("Mês de referência inválido. Use formato YYYY-MM", field_name)
            return None
        return text


def optional_text(value: Any) -> Optional[str]:
    """Strip a free-text field, mapping blanks to None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def require_uuid(value: Any, field_name: str) -> str:
    """Validate a single identifier argument, raising ValidationError."""
    result = ValidationResult()
    identifier = BaseValidator.validate_uuid(value, field_name, result)
    result.raise_if_invalid()
    return identifier


def optional_uuid(value: Any, field_name: str) -> Optional[str]:
    result = ValidationResult()
    identifier = BaseValidator.validate_uuid(value, field_name, result, required=False)
    result.raise_if_invalid()
    return identifier

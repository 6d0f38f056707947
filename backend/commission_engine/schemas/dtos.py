"""
Data Transfer Objects (DTOs) and validation schemas.

Request DTOs carry raw input (JSON strings, numbers) and `validate()`
normalizes every field in place: identifiers to canonical UUID strings,
money to Decimal, dates to `date`, enumerations to upper case. Any problem
raises `ValidationError` listing every offending field.
"""

from dataclasses import MISSING, asdict, dataclass, field, fields
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from commission_engine.core import config
from commission_engine.core.api_utils import to_json_value
from commission_engine.core.validation import (
    BaseValidator,
    ValidationResult,
    optional_text,
)
from commission_engine.domain.entities import (
    HUNDRED,
    CalculationBase,
    ClosePeriodResult,
    CommissionItemStatus,
    CommissionPeriodStatus,
    CommissionSource,
    CommissionType,
    AdvanceStatus,
)

MAX_PAGE_SIZE = 200


def today() -> date:
    return datetime.now(config.APP_TZ).date()


class RequestMixin:
    """Build a request from a JSON body, ignoring unknown keys.

    Missing required keys become None so `validate()` reports them.
    """

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]], **overrides: Any):
        data = dict(data or {})
        data.update(overrides)
        values = {}
        for f in fields(cls):
            if f.name in data:
                values[f.name] = data[f.name]
            elif f.default is MISSING and f.default_factory is MISSING:
                values[f.name] = None
        return cls(**values)


def _validate_page(request, result: ValidationResult) -> None:
    limit = BaseValidator.validate_integer(request.limit, "limit", result, min_value=1)
    offset = BaseValidator.validate_integer(request.offset, "offset", result, min_value=0)
    request.limit = min(limit or 50, MAX_PAGE_SIZE)
    request.offset = offset or 0


# ---------------------------------------------------------------------------
# Commission rules
# ---------------------------------------------------------------------------


@dataclass
class CommissionRuleCreateRequest(RequestMixin):
    """DTO for commission rule creation requests."""

    tenant_id: Any
    name: Any
    type: Any
    default_rate: Any
    effective_from: Any = None
    unit_id: Any = None
    description: Any = None
    min_amount: Any = None
    max_amount: Any = None
    calculation_base: Any = CalculationBase.BRUTO
    effective_to: Any = None
    priority: Any = None
    is_active: Any = True
    created_by: Any = None

    def validate(self) -> None:
        """Validate the request data."""
        result = ValidationResult()
        v = BaseValidator

        self.tenant_id = v.validate_uuid(self.tenant_id, "tenant_id", result)
        self.unit_id = v.validate_uuid(self.unit_id, "unit_id", result, required=False)
        self.created_by = v.validate_uuid(
            self.created_by, "created_by", result, required=False
        )
        if v.validate_required_field(self.name, "name", result):
            self.name = str(self.name).strip()
            if len(self.name) > 120:
                result.add_error("Nome deve ter no máximo 120 caracteres", "name")
        self.description = optional_text(self.description)

        if v.validate_required_field(self.type, "type", result):
            self.type = v.validate_choice(self.type, "type", result, CommissionType.ALL)
        self.calculation_base = (
            v.validate_choice(
                self.calculation_base,
                "calculation_base",
                result,
                CalculationBase.ALL,
            )
            or CalculationBase.BRUTO
        )

        if v.validate_required_field(self.default_rate, "default_rate", result):
            max_rate = HUNDRED if self.type == CommissionType.PERCENTUAL else None
            self.default_rate = v.validate_decimal(
                self.default_rate,
                "default_rate",
                result,
                min_value=Decimal("0"),
                max_value=max_rate,
            )
        self.min_amount = v.validate_decimal(
            self.min_amount, "min_amount", result, min_value=Decimal("0")
        )
        self.max_amount = v.validate_decimal(
            self.max_amount, "max_amount", result, min_value=Decimal("0")
        )
        if (
            self.min_amount is not None
            and self.max_amount is not None
            and self.max_amount < self.min_amount
        ):
            result.add_error("Valor máximo deve ser maior ou igual ao mínimo", "max_amount")

        self.effective_from = (
            v.validate_date(self.effective_from, "effective_from", result) or today()
        )
        self.effective_to = v.validate_date(self.effective_to, "effective_to", result)
        if self.effective_to is not None and self.effective_to < self.effective_from:
            result.add_error(
                "Data final deve ser posterior à data inicial", "effective_to"
            )

        self.priority = v.validate_integer(self.priority, "priority", result, min_value=0)
        self.is_active = bool(self.is_active) if self.is_active is not None else True

        result.raise_if_invalid()


@dataclass
class CommissionRuleUpdateRequest(RequestMixin):
    """DTO for commission rule update requests (only provided fields change)."""

    name: Any = None
    description: Any = None
    type: Any = None
    default_rate: Any = None
    min_amount: Any = None
    max_amount: Any = None
    calculation_base: Any = None
    effective_from: Any = None
    effective_to: Any = None
    priority: Any = None
    is_active: Any = None

    def validate(self) -> None:
        """Validate the request data."""
        result = ValidationResult()
        v = BaseValidator

        if self.name is not None:
            self.name = str(self.name).strip()
            if not self.name:
                result.add_error("name é obrigatório", "name")
        self.description = optional_text(self.description)
        self.type = v.validate_choice(self.type, "type", result, CommissionType.ALL)
        self.calculation_base = v.validate_choice(
            self.calculation_base, "calculation_base", result, CalculationBase.ALL
        )
        self.default_rate = v.validate_decimal(
            self.default_rate, "default_rate", result, min_value=Decimal("0")
        )
        self.min_amount = v.validate_decimal(
            self.min_amount, "min_amount", result, min_value=Decimal("0")
        )
        self.max_amount = v.validate_decimal(
            self.max_amount, "max_amount", result, min_value=Decimal("0")
        )
        self.effective_from = v.validate_date(
            self.effective_from, "effective_from", result
        )
        self.effective_to = v.validate_date(self.effective_to, "effective_to", result)
        self.priority = v.validate_integer(self.priority, "priority", result, min_value=0)
        if self.is_active is not None:
            self.is_active = bool(self.is_active)

        result.raise_if_invalid()


@dataclass
class RuleResolutionRequest(RequestMixin):
    """DTO for "which rule applies" queries."""

    tenant_id: Any
    on_date: Any = None
    unit_id: Any = None
    rule_id: Any = None

    def validate(self) -> None:
        result = ValidationResult()
        v = BaseValidator
        self.tenant_id = v.validate_uuid(self.tenant_id, "tenant_id", result)
        self.unit_id = v.validate_uuid(self.unit_id, "unit_id", result, required=False)
        self.rule_id = v.validate_uuid(self.rule_id, "rule_id", result, required=False)
        self.on_date = v.validate_date(self.on_date, "on_date", result) or today()
        result.raise_if_invalid()


# ---------------------------------------------------------------------------
# Commission items
# ---------------------------------------------------------------------------


def _validate_item_references(request, result: ValidationResult) -> None:
    v = BaseValidator
    request.tenant_id = v.validate_uuid(request.tenant_id, "tenant_id", result)
    request.professional_id = v.validate_uuid(
        request.professional_id, "professional_id", result
    )
    for name in (
        "unit_id",
        "command_id",
        "command_item_id",
        "appointment_id",
        "service_id",
        "rule_id",
    ):
        setattr(
            request,
            name,
            v.validate_uuid(getattr(request, name), name, result, required=False),
        )
    request.service_name = optional_text(request.service_name)
    request.description = optional_text(request.description)
    request.reference_date = (
        v.validate_date(request.reference_date, "reference_date", result) or today()
    )


@dataclass
class CommissionItemCreateRequest(RequestMixin):
    """DTO for recording a commission item with an already resolved rate."""

    tenant_id: Any
    professional_id: Any
    gross_value: Any
    commission_rate: Any
    commission_type: Any
    commission_source: Any = CommissionSource.MANUAL
    reference_date: Any = None
    unit_id: Any = None
    command_id: Any = None
    command_item_id: Any = None
    appointment_id: Any = None
    service_id: Any = None
    service_name: Any = None
    rule_id: Any = None
    description: Any = None

    def validate(self) -> None:
        """Validate the request data."""
        result = ValidationResult()
        v = BaseValidator

        _validate_item_references(self, result)

        if v.validate_required_field(self.gross_value, "gross_value", result):
            self.gross_value = v.validate_decimal(
                self.gross_value,
                "gross_value",
                result,
                min_value=Decimal("0"),
                exclusive_min=True,
            )
        if v.validate_required_field(self.commission_type, "commission_type", result):
            self.commission_type = v.validate_choice(
                self.commission_type, "commission_type", result, CommissionType.ALL
            )
        self.commission_source = (
            v.validate_choice(
                self.commission_source,
                "commission_source",
                result,
                CommissionSource.ALL,
            )
            or CommissionSource.MANUAL
        )
        if v.validate_required_field(self.commission_rate, "commission_rate", result):
            max_rate = (
                HUNDRED if self.commission_type == CommissionType.PERCENTUAL else None
            )
            self.commission_rate = v.validate_decimal(
                self.commission_rate,
                "commission_rate",
                result,
                min_value=Decimal("0"),
                max_value=max_rate,
            )

        result.raise_if_invalid()


@dataclass
class CommissionItemUpdateRequest(RequestMixin):
    """DTO for descriptive changes to a PENDENTE item."""

    unit_id: Any = None
    service_id: Any = None
    service_name: Any = None
    description: Any = None
    reference_date: Any = None

    def validate(self) -> None:
        result = ValidationResult()
        v = BaseValidator
        self.unit_id = v.validate_uuid(self.unit_id, "unit_id", result, required=False)
        self.service_id = v.validate_uuid(
            self.service_id, "service_id", result, required=False
        )
        self.service_name = optional_text(self.service_name)
        self.description = optional_text(self.description)
        self.reference_date = v.validate_date(
            self.reference_date, "reference_date", result
        )
        result.raise_if_invalid()


@dataclass
class SaleCommissionRequest(RequestMixin):
    """DTO for a sold line whose commission must be resolved by the hierarchy.

    `service_commission_rate` is the rate configured on the service, when it
    has one. `net_value` is used as the base when the resolved rule is
    calculated on LIQUIDO.
    """

    tenant_id: Any
    professional_id: Any
    gross_value: Any
    reference_date: Any = None
    net_value: Any = None
    service_commission_rate: Any = None
    unit_id: Any = None
    command_id: Any = None
    command_item_id: Any = None
    appointment_id: Any = None
    service_id: Any = None
    service_name: Any = None
    rule_id: Any = None
    description: Any = None

    def validate(self) -> None:
        result = ValidationResult()
        v = BaseValidator

        _validate_item_references(self, result)
        if v.validate_required_field(self.gross_value, "gross_value", result):
            self.gross_value = v.validate_decimal(
                self.gross_value,
                "gross_value",
                result,
                min_value=Decimal("0"),
                exclusive_min=True,
            )
        self.net_value = v.validate_decimal(
            self.net_value, "net_value", result, min_value=Decimal("0"), exclusive_min=True
        )
        self.service_commission_rate = v.validate_decimal(
            self.service_commission_rate,
            "service_commission_rate",
            result,
            min_value=Decimal("0"),
            max_value=HUNDRED,
        )

        result.raise_if_invalid()


@dataclass
class CommissionItemListRequest(RequestMixin):
    tenant_id: Any
    professional_id: Any = None
    unit_id: Any = None
    status: Any = None
    period_id: Any = None
    command_id: Any = None
    start_date: Any = None
    end_date: Any = None
    limit: Any = 50
    offset: Any = 0

    def validate(self) -> None:
        result = ValidationResult()
        v = BaseValidator
        self.tenant_id = v.validate_uuid(self.tenant_id, "tenant_id", result)
        for name in ("professional_id", "unit_id", "period_id", "command_id"):
            setattr(
                self,
                name,
                v.validate_uuid(getattr(self, name), name, result, required=False),
            )
        self.status = v.validate_choice(
            self.status, "status", result, CommissionItemStatus.ALL
        )
        self.start_date = v.validate_date(self.start_date, "start_date", result)
        self.end_date = v.validate_date(self.end_date, "end_date", result)
        _validate_page(self, result)
        result.raise_if_invalid()


@dataclass
class DateRangeRequest(RequestMixin):
    """DTO for aggregation queries over a reference-date range."""

    tenant_id: Any
    start_date: Any
    end_date: Any
    unit_id: Any = None

    def validate(self) -> None:
        result = ValidationResult()
        v = BaseValidator
        self.tenant_id = v.validate_uuid(self.tenant_id, "tenant_id", result)
        self.unit_id = v.validate_uuid(self.unit_id, "unit_id", result, required=False)
        if v.validate_required_field(self.start_date, "start_date", result):
            self.start_date = v.validate_date(self.start_date, "start_date", result)
        if v.validate_required_field(self.end_date, "end_date", result):
            self.end_date = v.validate_date(self.end_date, "end_date", result)
        if self.start_date and self.end_date and self.end_date < self.start_date:
            result.add_error("Data final deve ser posterior à data inicial", "end_date")
        result.raise_if_invalid()


# ---------------------------------------------------------------------------
# Advances
# ---------------------------------------------------------------------------


@dataclass
class AdvanceCreateRequest(RequestMixin):
    """DTO for advance requests."""

    tenant_id: Any
    professional_id: Any
    amount: Any
    request_date: Any = None
    reason: Any = None
    unit_id: Any = None
    created_by: Any = None

    def validate(self) -> None:
        """Validate the request data."""
        result = ValidationResult()
        v = BaseValidator
        self.tenant_id = v.validate_uuid(self.tenant_id, "tenant_id", result)
        self.professional_id = v.validate_uuid(
            self.professional_id, "professional_id", result
        )
        self.unit_id = v.validate_uuid(self.unit_id, "unit_id", result, required=False)
        self.created_by = v.validate_uuid(
            self.created_by, "created_by", result, required=False
        )
        if v.validate_required_field(self.amount, "amount", result):
            self.amount = v.validate_decimal(
                self.amount, "amount", result, min_value=Decimal("0"), exclusive_min=True
            )
        self.request_date = (
            v.validate_date(self.request_date, "request_date", result) or today()
        )
        self.reason = optional_text(self.reason)
        result.raise_if_invalid()


@dataclass
class AdvanceRejectRequest(RequestMixin):
    """DTO for rejecting an advance. The reason is mandatory."""

    rejected_by: Any
    reason: Any

    def validate(self) -> None:
        result = ValidationResult()
        self.rejected_by = BaseValidator.validate_uuid(
            self.rejected_by, "rejected_by", result
        )
        if BaseValidator.validate_required_field(self.reason, "reason", result):
            self.reason = str(self.reason).strip()
        result.raise_if_invalid()


@dataclass
class AdvanceListRequest(RequestMixin):
    tenant_id: Any
    professional_id: Any = None
    status: Any = None
    start_date: Any = None
    end_date: Any = None
    limit: Any = 50
    offset: Any = 0

    def validate(self) -> None:
        result = ValidationResult()
        v = BaseValidator
        self.tenant_id = v.validate_uuid(self.tenant_id, "tenant_id", result)
        self.professional_id = v.validate_uuid(
            self.professional_id, "professional_id", result, required=False
        )
        self.status = v.validate_choice(self.status, "status", result, AdvanceStatus.ALL)
        self.start_date = v.validate_date(self.start_date, "start_date", result)
        self.end_date = v.validate_date(self.end_date, "end_date", result)
        _validate_page(self, result)
        result.raise_if_invalid()


# ---------------------------------------------------------------------------
# Commission periods
# ---------------------------------------------------------------------------


@dataclass
class OpenPeriodRequest(RequestMixin):
    """DTO for opening (or fetching) a professional's period.

    When start/end are omitted they default to the calendar bounds of
    `reference_month`.
    """

    tenant_id: Any
    professional_id: Any
    reference_month: Any
    period_start: Any = None
    period_end: Any = None
    unit_id: Any = None
    notes: Any = None

    def validate(self) -> None:
        result = ValidationResult()
        v = BaseValidator
        self.tenant_id = v.validate_uuid(self.tenant_id, "tenant_id", result)
        self.professional_id = v.validate_uuid(
            self.professional_id, "professional_id", result
        )
        self.unit_id = v.validate_uuid(self.unit_id, "unit_id", result, required=False)
        self.reference_month = v.validate_reference_month(
            self.reference_month, "reference_month", result
        )
        self.period_start = v.validate_date(self.period_start, "period_start", result)
        self.period_end = v.validate_date(self.period_end, "period_end", result)
        if (
            self.period_start is not None
            and self.period_end is not None
            and self.period_end < self.period_start
        ):
            result.add_error("Data final deve ser posterior à data inicial", "period_end")
        self.notes = optional_text(self.notes)
        result.raise_if_invalid()


@dataclass
class PeriodListRequest(RequestMixin):
    tenant_id: Any
    professional_id: Any = None
    unit_id: Any = None
    status: Any = None
    reference_month: Any = None
    limit: Any = 50
    offset: Any = 0

    def validate(self) -> None:
        result = ValidationResult()
        v = BaseValidator
        self.tenant_id = v.validate_uuid(self.tenant_id, "tenant_id", result)
        self.professional_id = v.validate_uuid(
            self.professional_id, "professional_id", result, required=False
        )
        self.unit_id = v.validate_uuid(self.unit_id, "unit_id", result, required=False)
        self.status = v.validate_choice(
            self.status, "status", result, CommissionPeriodStatus.ALL
        )
        if self.reference_month:
            self.reference_month = v.validate_reference_month(
                self.reference_month, "reference_month", result
            )
        else:
            self.reference_month = None
        _validate_page(self, result)
        result.raise_if_invalid()


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


def _plain(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _plain(v) for key, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return to_json_value(value)


def to_response(entity: Any) -> Dict[str, Any]:
    """Serialize a domain dataclass into JSON friendly primitives."""
    return _plain(asdict(entity))


def to_response_list(entities: List[Any]) -> List[Dict[str, Any]]:
    return [to_response(e) for e in entities]


@dataclass
class ClosePeriodResponse:
    """DTO for period close API responses."""

    period: Dict[str, Any]
    payable: Optional[Dict[str, Any]]
    advances_deducted: int
    total_advances_amount: str
    items_processed: int
    advances_lookup_failed: bool
    summary_fallback: bool
    warnings: List[str] = field(default_factory=list)

    @classmethod
    def from_result(cls, result: ClosePeriodResult) -> "ClosePeriodResponse":
        return cls(
            period=to_response(result.period),
            payable=to_response(result.payable) if result.payable else None,
            advances_deducted=result.advances_deducted,
            total_advances_amount=to_json_value(result.total_advances_amount),
            items_processed=result.items_processed,
            advances_lookup_failed=result.advances_lookup_failed,
            summary_fallback=result.summary_fallback,
            warnings=list(result.warnings),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

"""
Custom exceptions for the commission engine.
Centralized error taxonomy shared by services, repositories and controllers.
"""

from typing import Any, Dict, List, Optional


class CommissionError(Exception):
    """Base class for every error raised by the commission engine."""

    code = "commission_error"

    def __init__(self, message: Optional[str] = None, **context: Any):
        self.message = message or self.__class__.__doc__ or self.code
        self.context: Dict[str, Any] = context
        super().__init__(self.message)


class ValidationError(CommissionError):
    """Input failed validation."""

    code = "validation_error"

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        errors: Optional[List[str]] = None,
    ):
        super().__init__(message, field=field)
        self.field = field
        self.errors = errors or [message]


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------


class NotFoundError(CommissionError):
    """Requested record does not exist."""

    code = "not_found"


class CommissionRuleNotFound(NotFoundError):
    """Commission rule not found."""

    code = "commission_rule_not_found"


class AdvanceNotFound(NotFoundError):
    """Advance not found."""

    code = "advance_not_found"


class CommissionItemNotFound(NotFoundError):
    """Commission item not found."""

    code = "commission_item_not_found"


class CommissionPeriodNotFound(NotFoundError):
    """Commission period not found."""

    code = "commission_period_not_found"


# ---------------------------------------------------------------------------
# Domain rule violations (illegal state transitions)
# ---------------------------------------------------------------------------


class DomainRuleViolation(CommissionError):
    """Operation is not allowed in the record's current state."""

    code = "domain_rule_violation"


class AdvanceCannotApprove(DomainRuleViolation):
    """Advance cannot be approved."""

    code = "advance_cannot_approve"


class AdvanceCannotReject(DomainRuleViolation):
    """Advance cannot be rejected."""

    code = "advance_cannot_reject"


class AdvanceCannotDeduct(DomainRuleViolation):
    """Advance cannot be deducted."""

    code = "advance_cannot_deduct"


class AdvanceCannotCancel(DomainRuleViolation):
    """Advance cannot be cancelled."""

    code = "advance_cannot_cancel"


class AdvanceCannotDelete(DomainRuleViolation):
    """Advance cannot be deleted."""

    code = "advance_cannot_delete"


class CommissionItemCannotProcess(DomainRuleViolation):
    """Commission item cannot be processed."""

    code = "commission_item_cannot_process"


class CommissionItemCannotUpdate(DomainRuleViolation):
    """Commission item cannot be updated."""

    code = "commission_item_cannot_update"


class CommissionItemCannotDelete(DomainRuleViolation):
    """Commission item cannot be deleted."""

    code = "commission_item_cannot_delete"


class PeriodCannotClose(DomainRuleViolation):
    """Commission period cannot be closed."""

    code = "period_cannot_close"


class PeriodCannotPay(DomainRuleViolation):
    """Commission period cannot be marked as paid."""

    code = "period_cannot_pay"


class PeriodCannotDelete(DomainRuleViolation):
    """Commission period cannot be deleted."""

    code = "period_cannot_delete"


class PeriodCannotReconcile(DomainRuleViolation):
    """Only closed commission periods can be reconciled."""

    code = "period_cannot_reconcile"


class CommissionRuleInUse(DomainRuleViolation):
    """Commission rule is referenced by commission items."""

    code = "commission_rule_in_use"


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------


class RepositoryError(CommissionError):
    """Persistence layer failure."""

    code = "repository_error"


class PayableEmissionError(CommissionError):
    """The accounts payable subsystem rejected the payable."""

    code = "payable_emission_error"

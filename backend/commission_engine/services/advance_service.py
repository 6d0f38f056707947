"""
Advance ledger use-cases.

    PENDING -> APPROVED -> DEDUCTED
    PENDING -> REJECTED
    PENDING | APPROVED -> CANCELLED

Transitions are guarded writes in the repository. When the guarded write
matches no row the advance is re-read to tell "not found" apart from
"illegal transition", and the record is left unchanged.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Type

from commission_engine.core import config
from commission_engine.core.exceptions import (
    AdvanceCannotApprove,
    AdvanceCannotCancel,
    AdvanceCannotDeduct,
    AdvanceCannotDelete,
    AdvanceCannotReject,
    AdvanceNotFound,
    DomainRuleViolation,
    ValidationError,
)
from commission_engine.core.validation import require_uuid
from commission_engine.domain.entities import Advance
from commission_engine.domain.interfaces import IAdvanceRepository
from commission_engine.schemas.dtos import (
    AdvanceCreateRequest,
    AdvanceListRequest,
    AdvanceRejectRequest,
)

logger = logging.getLogger(__name__)


class AdvanceService:
    def __init__(self, advance_repo: IAdvanceRepository):
        self.advance_repo = advance_repo

    def create_advance(self, request: AdvanceCreateRequest) -> Advance:
        request.validate()
        try:
            advance = Advance(
                tenant_id=request.tenant_id,
                unit_id=request.unit_id,
                professional_id=request.professional_id,
                amount=request.amount,
                request_date=request.request_date,
                reason=request.reason,
                created_by=request.created_by,
            )
        except ValueError as e:
            raise ValidationError(str(e)) from e

        created = self.advance_repo.create(advance)
        logger.info(
            "Advance requested",
            extra={
                "context": {
                    "advance_id": created.id,
                    "professional_id": created.professional_id,
                    "amount": str(created.amount),
                }
            },
        )
        return created

    def get_advance(self, tenant_id: str, advance_id: str) -> Advance:
        tenant_id = require_uuid(tenant_id, "tenant_id")
        advance_id = require_uuid(advance_id, "advance_id")
        advance = self.advance_repo.get_by_id(tenant_id, advance_id)
        if not advance:
            raise AdvanceNotFound(advance_id=advance_id)
        return advance

    def list_advances(self, request: AdvanceListRequest) -> List[Advance]:
        request.validate()
        return self.advance_repo.list(
            request.tenant_id,
            professional_id=request.professional_id,
            status=request.status,
            start_date=request.start_date,
            end_date=request.end_date,
            limit=request.limit,
            offset=request.offset,
        )

    def approve(self, tenant_id: str, advance_id: str, approved_by: str) -> Advance:
        approved_by = require_uuid(approved_by, "approved_by")
        advance = self.get_advance(tenant_id, advance_id)
        self._guard(advance.can_approve(), AdvanceCannotApprove, advance)
        applied = self.advance_repo.approve(
            advance.tenant_id, advance.id, approved_by, self._now()
        )
        return self._after_transition(applied, advance, AdvanceCannotApprove)

    def reject(
        self, tenant_id: str, advance_id: str, request: AdvanceRejectRequest
    ) -> Advance:
        request.validate()
        advance = self.get_advance(tenant_id, advance_id)
        self._guard(advance.can_reject(), AdvanceCannotReject, advance)
        applied = self.advance_repo.reject(
            advance.tenant_id,
            advance.id,
            request.rejected_by,
            request.reason,
            self._now(),
        )
        return self._after_transition(applied, advance, AdvanceCannotReject)

    def mark_deducted(self, tenant_id: str, advance_id: str, period_id: str) -> Advance:
        period_id = require_uuid(period_id, "period_id")
        advance = self.get_advance(tenant_id, advance_id)
        self._guard(advance.can_deduct(), AdvanceCannotDeduct, advance)
        applied = self.advance_repo.mark_deducted(
            advance.tenant_id, advance.id, period_id, self._now()
        )
        return self._after_transition(applied, advance, AdvanceCannotDeduct)

    def cancel(self, tenant_id: str, advance_id: str) -> Advance:
        advance = self.get_advance(tenant_id, advance_id)
        self._guard(advance.can_cancel(), AdvanceCannotCancel, advance)
        applied = self.advance_repo.cancel(advance.tenant_id, advance.id, self._now())
        return self._after_transition(applied, advance, AdvanceCannotCancel)

    def delete(self, tenant_id: str, advance_id: str) -> None:
        advance = self.get_advance(tenant_id, advance_id)
        self._guard(advance.can_delete(), AdvanceCannotDelete, advance)
        if not self.advance_repo.delete(advance.tenant_id, advance.id):
            self._after_transition(False, advance, AdvanceCannotDelete)
        logger.info(
            "Advance deleted",
            extra={"context": {"advance_id": advance.id, "tenant_id": advance.tenant_id}},
        )

    def get_approved_by_professional(
        self, tenant_id: str, professional_id: str
    ) -> List[Advance]:
        return self.advance_repo.get_approved_by_professional(
            require_uuid(tenant_id, "tenant_id"),
            require_uuid(professional_id, "professional_id"),
        )

    def get_pending_by_professional(
        self, tenant_id: str, professional_id: str
    ) -> List[Advance]:
        return self.advance_repo.get_pending_by_professional(
            require_uuid(tenant_id, "tenant_id"),
            require_uuid(professional_id, "professional_id"),
        )

    def balance(self, tenant_id: str, professional_id: str) -> Dict[str, Decimal]:
        """Approved (to be deducted) and pending totals of a professional."""
        tenant_id = require_uuid(tenant_id, "tenant_id")
        professional_id = require_uuid(professional_id, "professional_id")
        return {
            "approved": self.advance_repo.sum_approved(tenant_id, professional_id),
            "pending": self.advance_repo.sum_pending(tenant_id, professional_id),
        }

    @staticmethod
    def _now() -> datetime:
        return datetime.now(config.APP_TZ)

    @staticmethod
    def _guard(
        allowed: bool, error: Type[DomainRuleViolation], advance: Advance
    ) -> None:
        if not allowed:
            raise error(advance_id=advance.id, status=advance.status)

    def _after_transition(
        self, applied: bool, advance: Advance, error: Type[DomainRuleViolation]
    ) -> Advance:
        current = self.advance_repo.get_by_id(advance.tenant_id, advance.id)
        if current is None:
            raise AdvanceNotFound(advance_id=advance.id)
        if not applied:
            # Another request moved the advance first
            raise error(advance_id=advance.id, status=current.status)
        return current

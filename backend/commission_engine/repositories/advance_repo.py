import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Query, Session

from commission_engine.db.base import Advance as AdvanceModel
from commission_engine.db.transaction import commit_or_flush, repository_operation
from commission_engine.domain.entities import (
    ZERO,
    Advance,
    AdvanceStatus,
    quantize_money,
)
from commission_engine.domain.interfaces import IAdvanceRepository

logger = logging.getLogger(__name__)


class AdvanceRepository(IAdvanceRepository):
    """SQLAlchemy store for advances.

    Every transition is one UPDATE guarded by the current status, so two
    concurrent requests cannot both move the same advance.
    """

    def __init__(self, db: Session):
        self.db = db

    @repository_operation("create_advance")
    def create(self, advance: Advance) -> Advance:
        db_advance = AdvanceModel(
            id=advance.id,
            tenant_id=advance.tenant_id,
            unit_id=advance.unit_id,
            professional_id=advance.professional_id,
            amount=advance.amount,
            request_date=advance.request_date,
            reason=advance.reason,
            status=advance.status,
            created_by=advance.created_by,
        )
        self.db.add(db_advance)
        commit_or_flush(self.db)
        self.db.refresh(db_advance)
        return self._to_domain(db_advance)

    @repository_operation("approve_advance")
    def approve(
        self, tenant_id: str, advance_id: str, approved_by: str, at: datetime
    ) -> bool:
        return self._transition(
            tenant_id,
            advance_id,
            [AdvanceStatus.PENDING],
            {
                "status": AdvanceStatus.APPROVED,
                "approved_by": approved_by,
                "approved_at": at,
                "updated_at": at,
            },
        )

    @repository_operation("reject_advance")
    def reject(
        self,
        tenant_id: str,
        advance_id: str,
        rejected_by: str,
        reason: str,
        at: datetime,
    ) -> bool:
        return self._transition(
            tenant_id,
            advance_id,
            [AdvanceStatus.PENDING],
            {
                "status": AdvanceStatus.REJECTED,
                "rejected_by": rejected_by,
                "rejection_reason": reason,
                "rejected_at": at,
                "updated_at": at,
            },
        )

    @repository_operation("deduct_advance")
    def mark_deducted(
        self, tenant_id: str, advance_id: str, period_id: str, at: datetime
    ) -> bool:
        return self._transition(
            tenant_id,
            advance_id,
            [AdvanceStatus.APPROVED],
            {
                "status": AdvanceStatus.DEDUCTED,
                "deduction_period_id": period_id,
                "deducted_at": at,
                "updated_at": at,
            },
        )

    @repository_operation("cancel_advance")
    def cancel(self, tenant_id: str, advance_id: str, at: datetime) -> bool:
        return self._transition(
            tenant_id,
            advance_id,
            [AdvanceStatus.PENDING, AdvanceStatus.APPROVED],
            {"status": AdvanceStatus.CANCELLED, "updated_at": at},
        )

    @repository_operation("delete_advance")
    def delete(self, tenant_id: str, advance_id: str) -> bool:
        deleted = (
            self._query(tenant_id)
            .filter(
                AdvanceModel.id == advance_id,
                AdvanceModel.status == AdvanceStatus.PENDING,
            )
            .delete(synchronize_session="fetch")
        )
        commit_or_flush(self.db)
        return deleted > 0

    @repository_operation("get_advance")
    def get_by_id(self, tenant_id: str, advance_id: str) -> Optional[Advance]:
        db_advance = (
            self._query(tenant_id)
            .filter(AdvanceModel.id == advance_id)
            .populate_existing()
            .first()
        )
        return self._to_domain(db_advance) if db_advance else None

    @repository_operation("list_advances")
    def list(
        self,
        tenant_id: str,
        professional_id: Optional[str] = None,
        status: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Advance]:
        query = self._query(tenant_id)
        if professional_id:
            query = query.filter(AdvanceModel.professional_id == professional_id)
        if status:
            query = query.filter(AdvanceModel.status == status)
        if start_date:
            query = query.filter(AdvanceModel.request_date >= start_date)
        if end_date:
            query = query.filter(AdvanceModel.request_date <= end_date)
        advances = (
            query.order_by(AdvanceModel.request_date.desc(), AdvanceModel.created_at.desc())
            .limit(limit)
            .offset(offset)
            .all()
        )
        return [self._to_domain(a) for a in advances]

    @repository_operation("get_approved_advances")
    def get_approved_by_professional(
        self, tenant_id: str, professional_id: str
    ) -> List[Advance]:
        return self._by_professional(tenant_id, professional_id, AdvanceStatus.APPROVED)

    @repository_operation("get_pending_advances")
    def get_pending_by_professional(
        self, tenant_id: str, professional_id: str
    ) -> List[Advance]:
        return self._by_professional(tenant_id, professional_id, AdvanceStatus.PENDING)

    @repository_operation("sum_approved_advances")
    def sum_approved(self, tenant_id: str, professional_id: str) -> Decimal:
        return self._sum(tenant_id, professional_id, AdvanceStatus.APPROVED)

    @repository_operation("sum_pending_advances")
    def sum_pending(self, tenant_id: str, professional_id: str) -> Decimal:
        return self._sum(tenant_id, professional_id, AdvanceStatus.PENDING)

    def _query(self, tenant_id: str) -> Query:
        return self.db.query(AdvanceModel).filter(AdvanceModel.tenant_id == tenant_id)

    def _transition(
        self,
        tenant_id: str,
        advance_id: str,
        from_statuses: List[str],
        values: Dict[str, Any],
    ) -> bool:
        updated = (
            self._query(tenant_id)
            .filter(
                AdvanceModel.id == advance_id,
                AdvanceModel.status.in_(from_statuses),
            )
            .update(values, synchronize_session="fetch")
        )
        commit_or_flush(self.db)
        if updated:
            logger.info(
                f"Advance moved to {values['status']}",
                extra={"context": {"advance_id": advance_id, "tenant_id": tenant_id}},
            )
        return updated > 0

    def _by_professional(
        self, tenant_id: str, professional_id: str, status: str
    ) -> List[Advance]:
        advances = (
            self._query(tenant_id)
            .filter(
                AdvanceModel.professional_id == professional_id,
                AdvanceModel.status == status,
            )
            .order_by(AdvanceModel.request_date.asc(), AdvanceModel.created_at.asc())
            .all()
        )
        return [self._to_domain(a) for a in advances]

    def _sum(self, tenant_id: str, professional_id: str, status: str) -> Decimal:
        total = (
            self.db.query(func.coalesce(func.sum(AdvanceModel.amount), 0))
            .filter(
                AdvanceModel.tenant_id == tenant_id,
                AdvanceModel.professional_id == professional_id,
                AdvanceModel.status == status,
            )
            .scalar()
        )
        return quantize_money(Decimal(str(total))) if total is not None else ZERO

    @staticmethod
    def _to_domain(db_advance: AdvanceModel) -> Advance:
        return Advance(
            id=db_advance.id,
            tenant_id=db_advance.tenant_id,
            unit_id=db_advance.unit_id,
            professional_id=db_advance.professional_id,
            amount=db_advance.amount,
            request_date=db_advance.request_date,
            reason=db_advance.reason,
            status=db_advance.status,
            approved_at=db_advance.approved_at,
            approved_by=db_advance.approved_by,
            rejected_at=db_advance.rejected_at,
            rejected_by=db_advance.rejected_by,
            rejection_reason=db_advance.rejection_reason,
            deducted_at=db_advance.deducted_at,
            deduction_period_id=db_advance.deduction_period_id,
            created_by=db_advance.created_by,
            created_at=db_advance.created_at,
            updated_at=db_advance.updated_at,
        )

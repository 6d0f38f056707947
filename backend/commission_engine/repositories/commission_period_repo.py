import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import and_, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session

from commission_engine.db.base import CommissionItem as CommissionItemModel
from commission_engine.db.base import CommissionPeriod as CommissionPeriodModel
from commission_engine.db.transaction import commit_or_flush, repository_operation
from commission_engine.domain.entities import (
    ZERO,
    CommissionItemStatus,
    CommissionPeriod,
    CommissionPeriodStatus,
    CommissionPeriodSummary,
    quantize_money,
)
from commission_engine.domain.interfaces import ICommissionPeriodRepository

logger = logging.getLogger(__name__)


class CommissionPeriodRepository(ICommissionPeriodRepository):
    """SQLAlchemy store for commission periods.

    The partial unique index on (tenant_id, professional_id) for ABERTO rows
    guarantees a single open period per professional; `get_or_create_open`
    resolves the race by returning the row that won.
    """

    def __init__(self, db: Session):
        self.db = db

    @repository_operation("create_commission_period")
    def get_or_create_open(self, period: CommissionPeriod) -> CommissionPeriod:
        if period.professional_id:
            existing = self._open_row(period.tenant_id, period.professional_id)
            if existing:
                return self._to_domain(existing)

        db_period = CommissionPeriodModel(
            id=period.id,
            tenant_id=period.tenant_id,
            unit_id=period.unit_id,
            professional_id=period.professional_id,
            reference_month=period.reference_month,
            period_start=period.period_start,
            period_end=period.period_end,
            total_gross=period.total_gross,
            total_commission=period.total_commission,
            total_advances=period.total_advances,
            total_adjustments=period.total_adjustments,
            total_net=period.total_net,
            items_count=period.items_count,
            status=CommissionPeriodStatus.ABERTO,
            notes=period.notes,
        )
        try:
            with self.db.begin_nested():
                self.db.add(db_period)
        except IntegrityError:
            existing = (
                self._open_row(period.tenant_id, period.professional_id)
                if period.professional_id
                else None
            )
            if existing is None:
                raise
            logger.info(
                "Concurrent creation of open period, returning existing one",
                extra={
                    "context": {
                        "period_id": existing.id,
                        "professional_id": period.professional_id,
                    }
                },
            )
            return self._to_domain(existing)

        commit_or_flush(self.db)
        self.db.refresh(db_period)
        logger.info(
            "Commission period opened",
            extra={
                "context": {
                    "period_id": db_period.id,
                    "professional_id": db_period.professional_id,
                    "reference_month": db_period.reference_month,
                }
            },
        )
        return self._to_domain(db_period)

    @repository_operation("update_commission_period")
    def update(self, period: CommissionPeriod) -> bool:
        updated = (
            self._query(period.tenant_id)
            .filter(
                CommissionPeriodModel.id == period.id,
                CommissionPeriodModel.status == CommissionPeriodStatus.ABERTO,
            )
            .update(
                {
                    "total_gross": period.total_gross,
                    "total_commission": period.total_commission,
                    "total_advances": period.total_advances,
                    "total_adjustments": period.total_adjustments,
                    "total_net": period.total_net,
                    "items_count": period.items_count,
                    "notes": period.notes,
                    "updated_at": period.updated_at,
                },
                synchronize_session="fetch",
            )
        )
        commit_or_flush(self.db)
        return updated > 0

    @repository_operation("close_commission_period")
    def close(
        self, period: CommissionPeriod, closed_by: Optional[str], at: datetime
    ) -> bool:
        updated = (
            self._query(period.tenant_id)
            .filter(
                CommissionPeriodModel.id == period.id,
                CommissionPeriodModel.status == CommissionPeriodStatus.ABERTO,
            )
            .update(
                {
                    "status": CommissionPeriodStatus.FECHADO,
                    "total_gross": period.total_gross,
                    "total_commission": period.total_commission,
                    "total_advances": period.total_advances,
                    "total_adjustments": period.total_adjustments,
                    "total_net": period.total_net,
                    "items_count": period.items_count,
                    "conta_pagar_id": period.conta_pagar_id,
                    "closed_by": closed_by,
                    "closed_at": at,
                    "updated_at": at,
                },
                synchronize_session="fetch",
            )
        )
        commit_or_flush(self.db)
        return updated > 0

    @repository_operation("link_commission_period_payable")
    def link_payable(self, tenant_id: str, period_id: str, conta_pagar_id: str) -> bool:
        updated = (
            self._query(tenant_id)
            .filter(CommissionPeriodModel.id == period_id)
            .update({"conta_pagar_id": conta_pagar_id}, synchronize_session="fetch")
        )
        commit_or_flush(self.db)
        return updated > 0

    @repository_operation("pay_commission_period")
    def mark_as_paid(
        self, tenant_id: str, period_id: str, paid_by: Optional[str], at: datetime
    ) -> bool:
        updated = (
            self._query(tenant_id)
            .filter(
                CommissionPeriodModel.id == period_id,
                CommissionPeriodModel.status == CommissionPeriodStatus.FECHADO,
            )
            .update(
                {
                    "status": CommissionPeriodStatus.PAGO,
                    "paid_by": paid_by,
                    "paid_at": at,
                    "updated_at": at,
                },
                synchronize_session="fetch",
            )
        )
        commit_or_flush(self.db)
        return updated > 0

    @repository_operation("delete_commission_period")
    def delete(self, tenant_id: str, period_id: str) -> bool:
        deleted = (
            self._query(tenant_id)
            .filter(
                CommissionPeriodModel.id == period_id,
                CommissionPeriodModel.status == CommissionPeriodStatus.ABERTO,
            )
            .delete(synchronize_session="fetch")
        )
        commit_or_flush(self.db)
        return deleted > 0

    @repository_operation("get_commission_period")
    def get_by_id(self, tenant_id: str, period_id: str) -> Optional[CommissionPeriod]:
        db_period = (
            self._query(tenant_id)
            .filter(CommissionPeriodModel.id == period_id)
            .populate_existing()
            .first()
        )
        return self._to_domain(db_period) if db_period else None

    @repository_operation("get_open_commission_period")
    def get_open_by_professional(
        self, tenant_id: str, professional_id: str
    ) -> Optional[CommissionPeriod]:
        db_period = self._open_row(tenant_id, professional_id)
        return self._to_domain(db_period) if db_period else None

    @repository_operation("list_commission_periods")
    def list(
        self,
        tenant_id: str,
        professional_id: Optional[str] = None,
        unit_id: Optional[str] = None,
        status: Optional[str] = None,
        reference_month: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[CommissionPeriod]:
        query = self._query(tenant_id)
        if professional_id:
            query = query.filter(CommissionPeriodModel.professional_id == professional_id)
        if unit_id:
            query = query.filter(CommissionPeriodModel.unit_id == unit_id)
        if status:
            query = query.filter(CommissionPeriodModel.status == status)
        if reference_month:
            query = query.filter(CommissionPeriodModel.reference_month == reference_month)
        periods = (
            query.order_by(
                CommissionPeriodModel.period_start.desc(),
                CommissionPeriodModel.created_at.desc(),
            )
            .limit(limit)
            .offset(offset)
            .all()
        )
        return [self._to_domain(p) for p in periods]

    @repository_operation("summarize_commission_period")
    def get_summary(
        self, tenant_id: str, period_id: str
    ) -> Optional[CommissionPeriodSummary]:
        db_period = self._query(tenant_id).filter(CommissionPeriodModel.id == period_id).first()
        if not db_period:
            return None

        # Items already linked plus the professional's PENDENTE items in range
        membership = CommissionItemModel.period_id == period_id
        if db_period.professional_id:
            membership = or_(
                membership,
                and_(
                    CommissionItemModel.professional_id == db_period.professional_id,
                    CommissionItemModel.status == CommissionItemStatus.PENDENTE,
                    CommissionItemModel.reference_date >= db_period.period_start,
                    CommissionItemModel.reference_date <= db_period.period_end,
                ),
            )

        gross, commission, count = (
            self.db.query(
                func.sum(CommissionItemModel.gross_value),
                func.sum(CommissionItemModel.commission_value),
                func.count(CommissionItemModel.id),
            )
            .filter(CommissionItemModel.tenant_id == tenant_id, membership)
            .one()
        )
        return CommissionPeriodSummary(
            total_gross=quantize_money(Decimal(str(gross))) if gross is not None else ZERO,
            total_commission=(
                quantize_money(Decimal(str(commission))) if commission is not None else ZERO
            ),
            items_count=count or 0,
        )

    def _query(self, tenant_id: str) -> Query:
        return self.db.query(CommissionPeriodModel).filter(
            CommissionPeriodModel.tenant_id == tenant_id
        )

    def _open_row(
        self, tenant_id: str, professional_id: str
    ) -> Optional[CommissionPeriodModel]:
        return (
            self._query(tenant_id)
            .filter(
                CommissionPeriodModel.professional_id == professional_id,
                CommissionPeriodModel.status == CommissionPeriodStatus.ABERTO,
            )
            .populate_existing()
            .first()
        )

    @staticmethod
    def _to_domain(db_period: CommissionPeriodModel) -> CommissionPeriod:
        return CommissionPeriod(
            id=db_period.id,
            tenant_id=db_period.tenant_id,
            unit_id=db_period.unit_id,
            professional_id=db_period.professional_id,
            reference_month=db_period.reference_month,
            period_start=db_period.period_start,
            period_end=db_period.period_end,
            total_gross=db_period.total_gross,
            total_commission=db_period.total_commission,
            total_advances=db_period.total_advances,
            total_adjustments=db_period.total_adjustments,
            total_net=db_period.total_net,
            items_count=db_period.items_count,
            status=db_period.status,
            conta_pagar_id=db_period.conta_pagar_id,
            closed_at=db_period.closed_at,
            closed_by=db_period.closed_by,
            paid_at=db_period.paid_at,
            paid_by=db_period.paid_by,
            notes=db_period.notes,
            created_at=db_period.created_at,
            updated_at=db_period.updated_at,
        )

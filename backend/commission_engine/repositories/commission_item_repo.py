import logging
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Query, Session

from commission_engine.db.base import CommissionItem as CommissionItemModel
from commission_engine.db.transaction import commit_or_flush, repository_operation
from commission_engine.domain.entities import (
    ZERO,
    CommissionByService,
    CommissionItem,
    CommissionItemStatus,
    CommissionSummary,
    quantize_money,
)
from commission_engine.domain.interfaces import ICommissionItemRepository

logger = logging.getLogger(__name__)


def _money(value) -> Decimal:
    if value is None:
        return ZERO
    return quantize_money(Decimal(str(value)))


class CommissionItemRepository(ICommissionItemRepository):
    """SQLAlchemy store for commission items."""

    def __init__(self, db: Session):
        self.db = db

    @repository_operation("create_commission_item")
    def create(self, item: CommissionItem) -> CommissionItem:
        db_item = self._to_model(item)
        self.db.add(db_item)
        commit_or_flush(self.db)
        self.db.refresh(db_item)
        return self._to_domain(db_item)

    @repository_operation("create_commission_items")
    def create_batch(self, items: List[CommissionItem]) -> List[CommissionItem]:
        db_items = [self._to_model(item) for item in items]
        self.db.add_all(db_items)
        commit_or_flush(self.db)
        for db_item in db_items:
            self.db.refresh(db_item)
        logger.info(
            f"Created {len(db_items)} commission items",
            extra={"context": {"count": len(db_items)}},
        )
        return [self._to_domain(i) for i in db_items]

    @repository_operation("update_commission_item")
    def update(self, item: CommissionItem) -> bool:
        updated = (
            self._query(item.tenant_id)
            .filter(
                CommissionItemModel.id == item.id,
                CommissionItemModel.status == CommissionItemStatus.PENDENTE,
            )
            .update(
                {
                    "unit_id": item.unit_id,
                    "service_id": item.service_id,
                    "service_name": item.service_name,
                    "description": item.description,
                    "reference_date": item.reference_date,
                    "updated_at": item.updated_at,
                },
                synchronize_session="fetch",
            )
        )
        commit_or_flush(self.db)
        return updated > 0

    @repository_operation("process_commission_item")
    def process(
        self, tenant_id: str, item_id: str, period_id: str, at: datetime
    ) -> bool:
        updated = (
            self._query(tenant_id)
            .filter(
                CommissionItemModel.id == item_id,
                CommissionItemModel.status == CommissionItemStatus.PENDENTE,
            )
            .update(
                {
                    "status": CommissionItemStatus.PROCESSADO,
                    "period_id": period_id,
                    "processed_at": at,
                    "updated_at": at,
                },
                synchronize_session="fetch",
            )
        )
        commit_or_flush(self.db)
        return updated > 0

    @repository_operation("assign_commission_items_to_period")
    def assign_to_period(
        self,
        tenant_id: str,
        professional_id: str,
        period_id: str,
        start_date: date,
        end_date: date,
        at: datetime,
    ) -> int:
        # Only PENDENTE rows match, so re-running is a no-op
        updated = (
            self._query(tenant_id)
            .filter(
                CommissionItemModel.professional_id == professional_id,
                CommissionItemModel.status == CommissionItemStatus.PENDENTE,
                CommissionItemModel.reference_date >= start_date,
                CommissionItemModel.reference_date <= end_date,
            )
            .update(
                {
                    "status": CommissionItemStatus.PROCESSADO,
                    "period_id": period_id,
                    "processed_at": at,
                    "updated_at": at,
                },
                synchronize_session="fetch",
            )
        )
        commit_or_flush(self.db)
        logger.info(
            f"Assigned {updated} commission items to period",
            extra={
                "context": {
                    "period_id": period_id,
                    "professional_id": professional_id,
                    "count": updated,
                }
            },
        )
        return updated

    @repository_operation("delete_commission_item")
    def delete(self, tenant_id: str, item_id: str) -> bool:
        deleted = (
            self._query(tenant_id)
            .filter(
                CommissionItemModel.id == item_id,
                CommissionItemModel.status == CommissionItemStatus.PENDENTE,
            )
            .delete(synchronize_session="fetch")
        )
        commit_or_flush(self.db)
        return deleted > 0

    @repository_operation("get_commission_item")
    def get_by_id(self, tenant_id: str, item_id: str) -> Optional[CommissionItem]:
        db_item = (
            self._query(tenant_id)
            .filter(CommissionItemModel.id == item_id)
            .populate_existing()
            .first()
        )
        return self._to_domain(db_item) if db_item else None

    @repository_operation("list_commission_items")
    def list(
        self,
        tenant_id: str,
        professional_id: Optional[str] = None,
        unit_id: Optional[str] = None,
        status: Optional[str] = None,
        period_id: Optional[str] = None,
        command_id: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[CommissionItem]:
        query = self._query(tenant_id)
        if professional_id:
            query = query.filter(CommissionItemModel.professional_id == professional_id)
        if unit_id:
            query = query.filter(CommissionItemModel.unit_id == unit_id)
        if status:
            query = query.filter(CommissionItemModel.status == status)
        if period_id:
            query = query.filter(CommissionItemModel.period_id == period_id)
        if command_id:
            query = query.filter(CommissionItemModel.command_id == command_id)
        if start_date:
            query = query.filter(CommissionItemModel.reference_date >= start_date)
        if end_date:
            query = query.filter(CommissionItemModel.reference_date <= end_date)
        items = (
            query.order_by(
                CommissionItemModel.reference_date.desc(),
                CommissionItemModel.created_at.desc(),
            )
            .limit(limit)
            .offset(offset)
            .all()
        )
        return [self._to_domain(i) for i in items]

    @repository_operation("get_commission_item_by_command_item")
    def get_by_command_item(
        self, tenant_id: str, command_item_id: str
    ) -> Optional[CommissionItem]:
        db_item = (
            self._query(tenant_id)
            .filter(CommissionItemModel.command_item_id == command_item_id)
            .order_by(CommissionItemModel.created_at.desc(), CommissionItemModel.id)
            .populate_existing()
            .first()
        )
        return self._to_domain(db_item) if db_item else None

    @repository_operation("list_commission_items_by_command")
    def list_by_command(self, tenant_id: str, command_id: str) -> List[CommissionItem]:
        items = (
            self._query(tenant_id)
            .filter(CommissionItemModel.command_id == command_id)
            .order_by(CommissionItemModel.created_at.asc())
            .all()
        )
        return [self._to_domain(i) for i in items]

    @repository_operation("get_pending_commission_items")
    def get_pending_by_professional(
        self,
        tenant_id: str,
        professional_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[CommissionItem]:
        query = self._query(tenant_id).filter(
            CommissionItemModel.professional_id == professional_id,
            CommissionItemModel.status == CommissionItemStatus.PENDENTE,
        )
        if start_date:
            query = query.filter(CommissionItemModel.reference_date >= start_date)
        if end_date:
            query = query.filter(CommissionItemModel.reference_date <= end_date)
        items = query.order_by(CommissionItemModel.reference_date.asc()).all()
        return [self._to_domain(i) for i in items]

    @repository_operation("count_commission_items_by_rule")
    def count_by_rule(self, tenant_id: str, rule_id: str) -> int:
        return (
            self._query(tenant_id)
            .filter(CommissionItemModel.rule_id == rule_id)
            .count()
        )

    @repository_operation("sum_commission_by_date_range")
    def sum_by_date_range(
        self,
        tenant_id: str,
        start_date: date,
        end_date: date,
        unit_id: Optional[str] = None,
    ) -> Decimal:
        query = self.db.query(
            func.coalesce(func.sum(CommissionItemModel.commission_value), 0)
        ).filter(
            CommissionItemModel.tenant_id == tenant_id,
            CommissionItemModel.reference_date >= start_date,
            CommissionItemModel.reference_date <= end_date,
        )
        if unit_id:
            query = query.filter(CommissionItemModel.unit_id == unit_id)
        return _money(query.scalar())

    @repository_operation("summarize_commission_by_professional")
    def get_summary_by_professional(
        self,
        tenant_id: str,
        start_date: date,
        end_date: date,
        unit_id: Optional[str] = None,
    ) -> List[CommissionSummary]:
        query = self.db.query(
            CommissionItemModel.professional_id,
            func.sum(CommissionItemModel.gross_value),
            func.sum(CommissionItemModel.commission_value),
            func.count(CommissionItemModel.id),
        ).filter(
            CommissionItemModel.tenant_id == tenant_id,
            CommissionItemModel.reference_date >= start_date,
            CommissionItemModel.reference_date <= end_date,
        )
        if unit_id:
            query = query.filter(CommissionItemModel.unit_id == unit_id)
        rows = (
            query.group_by(CommissionItemModel.professional_id)
            .order_by(func.sum(CommissionItemModel.commission_value).desc())
            .all()
        )
        return [
            CommissionSummary(
                professional_id=professional_id,
                total_gross=_money(gross),
                total_commission=_money(commission),
                items_count=count,
            )
            for professional_id, gross, commission, count in rows
        ]

    @repository_operation("summarize_commission_by_service")
    def get_summary_by_service(
        self,
        tenant_id: str,
        start_date: date,
        end_date: date,
        unit_id: Optional[str] = None,
    ) -> List[CommissionByService]:
        query = self.db.query(
            CommissionItemModel.service_id,
            func.max(CommissionItemModel.service_name),
            func.sum(CommissionItemModel.gross_value),
            func.sum(CommissionItemModel.commission_value),
            func.count(CommissionItemModel.id),
        ).filter(
            CommissionItemModel.tenant_id == tenant_id,
            CommissionItemModel.reference_date >= start_date,
            CommissionItemModel.reference_date <= end_date,
        )
        if unit_id:
            query = query.filter(CommissionItemModel.unit_id == unit_id)
        rows = (
            query.group_by(CommissionItemModel.service_id)
            .order_by(func.sum(CommissionItemModel.commission_value).desc())
            .all()
        )
        return [
            CommissionByService(
                service_id=service_id,
                service_name=service_name,
                total_gross=_money(gross),
                total_commission=_money(commission),
                items_count=count,
            )
            for service_id, service_name, gross, commission, count in rows
        ]

    def _query(self, tenant_id: str) -> Query:
        return self.db.query(CommissionItemModel).filter(
            CommissionItemModel.tenant_id == tenant_id
        )

    @staticmethod
    def _to_model(item: CommissionItem) -> CommissionItemModel:
        return CommissionItemModel(
            id=item.id,
            tenant_id=item.tenant_id,
            unit_id=item.unit_id,
            professional_id=item.professional_id,
            command_id=item.command_id,
            command_item_id=item.command_item_id,
            appointment_id=item.appointment_id,
            service_id=item.service_id,
            service_name=item.service_name,
            rule_id=item.rule_id,
            description=item.description,
            gross_value=item.gross_value,
            commission_rate=item.commission_rate,
            commission_type=item.commission_type,
            commission_value=item.commission_value,
            commission_source=item.commission_source,
            reference_date=item.reference_date,
            status=item.status,
            period_id=item.period_id,
            processed_at=item.processed_at,
        )

    @staticmethod
    def _to_domain(db_item: CommissionItemModel) -> CommissionItem:
        return CommissionItem(
            id=db_item.id,
            tenant_id=db_item.tenant_id,
            unit_id=db_item.unit_id,
            professional_id=db_item.professional_id,
            command_id=db_item.command_id,
            command_item_id=db_item.command_item_id,
            appointment_id=db_item.appointment_id,
            service_id=db_item.service_id,
            service_name=db_item.service_name,
            rule_id=db_item.rule_id,
            description=db_item.description,
            gross_value=db_item.gross_value,
            commission_rate=db_item.commission_rate,
            commission_type=db_item.commission_type,
            commission_value=db_item.commission_value,
            commission_source=db_item.commission_source,
            reference_date=db_item.reference_date,
            status=db_item.status,
            period_id=db_item.period_id,
            processed_at=db_item.processed_at,
            created_at=db_item.created_at,
            updated_at=db_item.updated_at,
        )

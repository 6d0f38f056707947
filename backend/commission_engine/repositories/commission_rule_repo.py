import logging
from datetime import date
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Query, Session

from commission_engine.core.exceptions import CommissionRuleNotFound
from commission_engine.db.base import CommissionRule as CommissionRuleModel
from commission_engine.db.transaction import commit_or_flush, repository_operation
from commission_engine.domain.entities import CommissionRule
from commission_engine.domain.interfaces import ICommissionRuleRepository

logger = logging.getLogger(__name__)


class CommissionRuleRepository(ICommissionRuleRepository):
    """SQLAlchemy store for commission rules."""

    def __init__(self, db: Session):
        self.db = db

    @repository_operation("create_commission_rule")
    def create(self, rule: CommissionRule) -> CommissionRule:
        db_rule = CommissionRuleModel(id=rule.id)
        self._apply(db_rule, rule)
        self.db.add(db_rule)
        commit_or_flush(self.db)
        self.db.refresh(db_rule)
        logger.info(
            "Commission rule created",
            extra={"context": {"rule_id": db_rule.id, "tenant_id": rule.tenant_id}},
        )
        return self._to_domain(db_rule)

    @repository_operation("update_commission_rule")
    def update(self, rule: CommissionRule) -> CommissionRule:
        db_rule = self._query(rule.tenant_id).filter(
            CommissionRuleModel.id == rule.id
        ).first()
        if not db_rule:
            raise CommissionRuleNotFound(rule_id=rule.id)
        self._apply(db_rule, rule)
        commit_or_flush(self.db)
        self.db.refresh(db_rule)
        return self._to_domain(db_rule)

    @repository_operation("set_commission_rule_active")
    def set_active(self, tenant_id: str, rule_id: str, active: bool) -> bool:
        updated = (
            self._query(tenant_id)
            .filter(CommissionRuleModel.id == rule_id)
            .update({"is_active": active}, synchronize_session="fetch")
        )
        commit_or_flush(self.db)
        return updated > 0

    @repository_operation("delete_commission_rule")
    def delete(self, tenant_id: str, rule_id: str) -> bool:
        deleted = (
            self._query(tenant_id)
            .filter(CommissionRuleModel.id == rule_id)
            .delete(synchronize_session="fetch")
        )
        commit_or_flush(self.db)
        return deleted > 0

    @repository_operation("get_commission_rule")
    def get_by_id(self, tenant_id: str, rule_id: str) -> Optional[CommissionRule]:
        db_rule = self._query(tenant_id).filter(CommissionRuleModel.id == rule_id).first()
        return self._to_domain(db_rule) if db_rule else None

    @repository_operation("list_commission_rules")
    def list(self, tenant_id: str, active_only: bool = False) -> List[CommissionRule]:
        query = self._query(tenant_id)
        if active_only:
            query = query.filter(CommissionRuleModel.is_active.is_(True))
        rules = self._ordered(query).all()
        return [self._to_domain(r) for r in rules]

    def list_active(self, tenant_id: str) -> List[CommissionRule]:
        return self.list(tenant_id, active_only=True)

    @repository_operation("get_effective_commission_rule")
    def get_effective(self, tenant_id: str, on: date) -> Optional[CommissionRule]:
        db_rule = self._ordered(self._effective(tenant_id, on)).first()
        return self._to_domain(db_rule) if db_rule else None

    @repository_operation("get_effective_unit_commission_rule")
    def get_effective_by_unit(
        self, tenant_id: str, unit_id: str, on: date
    ) -> Optional[CommissionRule]:
        query = self._effective(tenant_id, on).filter(
            CommissionRuleModel.unit_id == unit_id
        )
        db_rule = self._ordered(query).first()
        return self._to_domain(db_rule) if db_rule else None

    @repository_operation("get_effective_global_commission_rule")
    def get_effective_global(self, tenant_id: str, on: date) -> Optional[CommissionRule]:
        query = self._effective(tenant_id, on).filter(
            CommissionRuleModel.unit_id.is_(None)
        )
        db_rule = self._ordered(query).first()
        return self._to_domain(db_rule) if db_rule else None

    def _query(self, tenant_id: str) -> Query:
        return self.db.query(CommissionRuleModel).filter(
            CommissionRuleModel.tenant_id == tenant_id
        )

    def _effective(self, tenant_id: str, on: date) -> Query:
        return self._query(tenant_id).filter(
            CommissionRuleModel.is_active.is_(True),
            CommissionRuleModel.effective_from <= on,
            or_(
                CommissionRuleModel.effective_to.is_(None),
                CommissionRuleModel.effective_to >= on,
            ),
        )

    @staticmethod
    def _ordered(query: Query) -> Query:
        # Lower priority number wins; rules without priority go last, then newest first
        return query.order_by(
            CommissionRuleModel.priority.is_(None),
            CommissionRuleModel.priority.asc(),
            CommissionRuleModel.created_at.desc(),
        )

    @staticmethod
    def _apply(db_rule: CommissionRuleModel, rule: CommissionRule) -> None:
        db_rule.tenant_id = rule.tenant_id
        db_rule.unit_id = rule.unit_id
        db_rule.name = rule.name
        db_rule.description = rule.description
        db_rule.type = rule.type
        db_rule.default_rate = rule.default_rate
        db_rule.min_amount = rule.min_amount
        db_rule.max_amount = rule.max_amount
        db_rule.calculation_base = rule.calculation_base
        db_rule.effective_from = rule.effective_from
        db_rule.effective_to = rule.effective_to
        db_rule.priority = rule.priority
        db_rule.is_active = rule.is_active
        db_rule.created_by = rule.created_by

    @staticmethod
    def _to_domain(db_rule: CommissionRuleModel) -> CommissionRule:
        return CommissionRule(
            id=db_rule.id,
            tenant_id=db_rule.tenant_id,
            unit_id=db_rule.unit_id,
            name=db_rule.name,
            description=db_rule.description,
            type=db_rule.type,
            default_rate=db_rule.default_rate,
            min_amount=db_rule.min_amount,
            max_amount=db_rule.max_amount,
            calculation_base=db_rule.calculation_base,
            effective_from=db_rule.effective_from,
            effective_to=db_rule.effective_to,
            priority=db_rule.priority,
            is_active=db_rule.is_active,
            created_by=db_rule.created_by,
            created_at=db_rule.created_at,
            updated_at=db_rule.updated_at,
        )

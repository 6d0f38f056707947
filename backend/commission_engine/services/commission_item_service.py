"""
Commission item ledger use-cases.

Items are created PENDENTE with their commission value computed once, and
move to PROCESSADO only by being assigned to a period. Deleting is legal
only while PENDENTE; deleting by a command line that has no item succeeds.
"""

import logging
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from commission_engine.core import config
from commission_engine.core.exceptions import (
    CommissionItemCannotDelete,
    CommissionItemCannotProcess,
    CommissionItemCannotUpdate,
    CommissionItemNotFound,
    ValidationError,
)
from commission_engine.core.validation import require_uuid
from commission_engine.domain.entities import (
    CalculationBase,
    CommissionByService,
    CommissionItem,
    CommissionSummary,
)
from commission_engine.domain.interfaces import ICommissionItemRepository
from commission_engine.schemas.dtos import (
    CommissionItemCreateRequest,
    CommissionItemListRequest,
    CommissionItemUpdateRequest,
    DateRangeRequest,
    SaleCommissionRequest,
)
from commission_engine.services.commission_rule_service import CommissionRuleService

logger = logging.getLogger(__name__)


class CommissionItemService:
    def __init__(
        self,
        item_repo: ICommissionItemRepository,
        rule_service: Optional[CommissionRuleService] = None,
    ):
        self.item_repo = item_repo
        self.rule_service = rule_service

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_item(self, request: CommissionItemCreateRequest) -> CommissionItem:
        item = self._build_item(request)
        created = self.item_repo.create(item)
        self._log_created(created)
        return created

    def create_batch(
        self, requests: List[CommissionItemCreateRequest]
    ) -> List[CommissionItem]:
        """Create several items; nothing is stored unless every one is valid."""
        if not requests:
            return []

        items = []
        errors = []
        for index, request in enumerate(requests):
            try:
                items.append(self._build_item(request))
            except ValidationError as e:
                errors.extend(f"[{index}] {message}" for message in e.errors)
        if errors:
            raise ValidationError("; ".join(errors), errors=errors)

        created = self.item_repo.create_batch(items)
        logger.info(
            f"Commission batch recorded: {len(created)} items",
            extra={"context": {"count": len(created)}},
        )
        return created

    def create_from_sale(self, request: SaleCommissionRequest) -> Optional[CommissionItem]:
        """Resolve the commission hierarchy for a sold line and record it.

        Returns None when nothing in the hierarchy applies.
        """
        if self.rule_service is None:
            raise RuntimeError("Rule service is required to create items from sales")
        request.validate()

        resolved = self.rule_service.resolve_for_sale(
            request.tenant_id,
            request.professional_id,
            unit_id=request.unit_id,
            on=request.reference_date,
            service_commission_rate=request.service_commission_rate,
            rule_id=request.rule_id,
        )
        if resolved is None:
            logger.info(
                "No commission applies to sale line",
                extra={
                    "context": {
                        "professional_id": request.professional_id,
                        "command_item_id": request.command_item_id,
                    }
                },
            )
            return None

        base_value = request.gross_value
        if resolved.calculation_base == CalculationBase.LIQUIDO and request.net_value:
            base_value = request.net_value

        try:
            item = CommissionItem(
                tenant_id=request.tenant_id,
                unit_id=request.unit_id,
                professional_id=request.professional_id,
                command_id=request.command_id,
                command_item_id=request.command_item_id,
                appointment_id=request.appointment_id,
                service_id=request.service_id,
                service_name=request.service_name,
                rule_id=resolved.rule_id,
                description=request.description,
                gross_value=base_value,
                commission_rate=resolved.rate,
                commission_type=resolved.commission_type,
                commission_source=resolved.source,
                reference_date=request.reference_date,
            )
        except ValueError as e:
            raise ValidationError(str(e)) from e

        created = self.item_repo.create(item)
        self._log_created(created)
        return created

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_item(self, tenant_id: str, item_id: str) -> CommissionItem:
        tenant_id = require_uuid(tenant_id, "tenant_id")
        item_id = require_uuid(item_id, "item_id")
        item = self.item_repo.get_by_id(tenant_id, item_id)
        if not item:
            raise CommissionItemNotFound(item_id=item_id)
        return item

    def list_items(self, request: CommissionItemListRequest) -> List[CommissionItem]:
        request.validate()
        return self.item_repo.list(
            request.tenant_id,
            professional_id=request.professional_id,
            unit_id=request.unit_id,
            status=request.status,
            period_id=request.period_id,
            command_id=request.command_id,
            start_date=request.start_date,
            end_date=request.end_date,
            limit=request.limit,
            offset=request.offset,
        )

    def get_by_command_item(
        self, tenant_id: str, command_item_id: str
    ) -> Optional[CommissionItem]:
        return self.item_repo.get_by_command_item(
            require_uuid(tenant_id, "tenant_id"),
            require_uuid(command_item_id, "command_item_id"),
        )

    def list_by_command(self, tenant_id: str, command_id: str) -> List[CommissionItem]:
        return self.item_repo.list_by_command(
            require_uuid(tenant_id, "tenant_id"), require_uuid(command_id, "command_id")
        )

    def get_pending_by_professional(
        self,
        tenant_id: str,
        professional_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[CommissionItem]:
        return self.item_repo.get_pending_by_professional(
            require_uuid(tenant_id, "tenant_id"),
            require_uuid(professional_id, "professional_id"),
            start_date,
            end_date,
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def update_item(
        self, tenant_id: str, item_id: str, request: CommissionItemUpdateRequest
    ) -> CommissionItem:
        """Change descriptive fields. Values and rates never change."""
        request.validate()
        item = self.get_item(tenant_id, item_id)
        if not item.can_process():
            raise CommissionItemCannotUpdate(item_id=item.id, status=item.status)

        changes = {
            name: getattr(request, name)
            for name in ("unit_id", "service_id", "service_name", "description", "reference_date")
            if getattr(request, name) is not None
        }
        updated = replace(item, updated_at=self._now(), **changes)
        if not self.item_repo.update(updated):
            raise CommissionItemCannotUpdate(item_id=item.id)
        return self.get_item(item.tenant_id, item.id)

    def process(self, tenant_id: str, item_id: str, period_id: str) -> CommissionItem:
        period_id = require_uuid(period_id, "period_id")
        item = self.get_item(tenant_id, item_id)
        if not item.can_process():
            raise CommissionItemCannotProcess(item_id=item.id, status=item.status)
        if not self.item_repo.process(item.tenant_id, item.id, period_id, self._now()):
            raise CommissionItemCannotProcess(item_id=item.id)
        return self.get_item(item.tenant_id, item.id)

    def assign_to_period(
        self,
        tenant_id: str,
        professional_id: str,
        period_id: str,
        start_date: date,
        end_date: date,
    ) -> int:
        """Move every PENDENTE item of the professional in the range to PROCESSADO."""
        return self.item_repo.assign_to_period(
            require_uuid(tenant_id, "tenant_id"),
            require_uuid(professional_id, "professional_id"),
            require_uuid(period_id, "period_id"),
            start_date,
            end_date,
            self._now(),
        )

    def delete_item(self, tenant_id: str, item_id: str) -> None:
        item = self.get_item(tenant_id, item_id)
        self._delete(item)

    def delete_by_command_item(self, tenant_id: str, command_item_id: str) -> bool:
        """Remove the item of a cancelled command line.

        Returns False when there was nothing to remove.
        """
        item = self.get_by_command_item(tenant_id, command_item_id)
        if item is None:
            logger.debug(
                "No commission item for command line",
                extra={"context": {"command_item_id": command_item_id}},
            )
            return False
        self._delete(item)
        return True

    # ------------------------------------------------------------------
    # Aggregations for financial reports
    # ------------------------------------------------------------------

    def sum_by_date_range(self, request: DateRangeRequest) -> Decimal:
        request.validate()
        return self.item_repo.sum_by_date_range(
            request.tenant_id, request.start_date, request.end_date, request.unit_id
        )

    def summary_by_professional(self, request: DateRangeRequest) -> List[CommissionSummary]:
        request.validate()
        return self.item_repo.get_summary_by_professional(
            request.tenant_id, request.start_date, request.end_date, request.unit_id
        )

    def summary_by_service(self, request: DateRangeRequest) -> List[CommissionByService]:
        request.validate()
        return self.item_repo.get_summary_by_service(
            request.tenant_id, request.start_date, request.end_date, request.unit_id
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _delete(self, item: CommissionItem) -> None:
        if not item.can_delete():
            raise CommissionItemCannotDelete(item_id=item.id, status=item.status)
        if not self.item_repo.delete(item.tenant_id, item.id):
            raise CommissionItemCannotDelete(item_id=item.id)
        logger.info(
            "Commission item deleted",
            extra={"context": {"item_id": item.id, "tenant_id": item.tenant_id}},
        )

    @staticmethod
    def _build_item(request: CommissionItemCreateRequest) -> CommissionItem:
        request.validate()
        try:
            return CommissionItem(
                tenant_id=request.tenant_id,
                unit_id=request.unit_id,
                professional_id=request.professional_id,
                command_id=request.command_id,
                command_item_id=request.command_item_id,
                appointment_id=request.appointment_id,
                service_id=request.service_id,
                service_name=request.service_name,
                rule_id=request.rule_id,
                description=request.description,
                gross_value=request.gross_value,
                commission_rate=request.commission_rate,
                commission_type=request.commission_type,
                commission_source=request.commission_source,
                reference_date=request.reference_date,
            )
        except ValueError as e:
            raise ValidationError(str(e)) from e

    @staticmethod
    def _log_created(item: CommissionItem) -> None:
        logger.info(
            "Commission item recorded",
            extra={
                "context": {
                    "item_id": item.id,
                    "professional_id": item.professional_id,
                    "commission_value": str(item.commission_value),
                    "source": item.commission_source,
                }
            },
        )

    @staticmethod
    def _now() -> datetime:
        return datetime.now(config.APP_TZ)

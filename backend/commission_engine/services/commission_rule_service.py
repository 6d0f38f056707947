"""
Commission rule use-cases: rule CRUD and the resolution hierarchy.
"""

import logging
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from commission_engine.core import config
from commission_engine.core.exceptions import (
    CommissionRuleInUse,
    CommissionRuleNotFound,
    ValidationError,
)
from commission_engine.core.validation import optional_uuid, require_uuid
from commission_engine.domain.entities import (
    CalculationBase,
    CommissionRule,
    CommissionSource,
    CommissionType,
    ResolvedCommission,
)
from commission_engine.domain.interfaces import (
    ICommissionItemReader,
    ICommissionRuleRepository,
    IProfessionalDirectory,
)
from commission_engine.schemas.dtos import (
    CommissionRuleCreateRequest,
    CommissionRuleUpdateRequest,
    RuleResolutionRequest,
)

logger = logging.getLogger(__name__)


class CommissionRuleService:
    """Application service for commission rules.

    Resolution never raises for "no rule": callers receive None and decide
    whether a missing rule blocks what they are doing.
    """

    def __init__(
        self,
        rule_repo: ICommissionRuleRepository,
        item_reader: Optional[ICommissionItemReader] = None,
        professional_directory: Optional[IProfessionalDirectory] = None,
    ):
        self.rule_repo = rule_repo
        self.item_reader = item_reader
        self.professional_directory = professional_directory

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create_rule(self, request: CommissionRuleCreateRequest) -> CommissionRule:
        request.validate()

        try:
            rule = CommissionRule(
                tenant_id=request.tenant_id,
                unit_id=request.unit_id,
                name=request.name,
                description=request.description,
                type=request.type,
                default_rate=request.default_rate,
                min_amount=request.min_amount,
                max_amount=request.max_amount,
                calculation_base=request.calculation_base,
                effective_from=request.effective_from,
                effective_to=request.effective_to,
                priority=request.priority,
                is_active=request.is_active,
                created_by=request.created_by,
            )
        except ValueError as e:
            raise ValidationError(str(e)) from e

        created = self.rule_repo.create(rule)
        logger.info(
            "Commission rule registered",
            extra={
                "context": {
                    "rule_id": created.id,
                    "tenant_id": created.tenant_id,
                    "unit_id": created.unit_id,
                    "type": created.type,
                }
            },
        )
        return created

    def get_rule(self, tenant_id: str, rule_id: str) -> CommissionRule:
        tenant_id = require_uuid(tenant_id, "tenant_id")
        rule_id = require_uuid(rule_id, "rule_id")
        rule = self.rule_repo.get_by_id(tenant_id, rule_id)
        if not rule:
            raise CommissionRuleNotFound(rule_id=rule_id)
        return rule

    def list_rules(self, tenant_id: str, active_only: bool = False) -> List[CommissionRule]:
        tenant_id = require_uuid(tenant_id, "tenant_id")
        if active_only:
            return self.rule_repo.list_active(tenant_id)
        return self.rule_repo.list(tenant_id)

    def update_rule(
        self, tenant_id: str, rule_id: str, request: CommissionRuleUpdateRequest
    ) -> CommissionRule:
        request.validate()
        rule = self.get_rule(tenant_id, rule_id)

        changes = {
            name: getattr(request, name)
            for name in (
                "name",
                "description",
                "type",
                "default_rate",
                "min_amount",
                "max_amount",
                "calculation_base",
                "effective_from",
                "effective_to",
                "priority",
                "is_active",
            )
            if getattr(request, name) is not None
        }
        try:
            updated = replace(rule, **changes)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        return self.rule_repo.update(updated)

    def activate_rule(self, tenant_id: str, rule_id: str) -> CommissionRule:
        return self._set_active(tenant_id, rule_id, True)

    def deactivate_rule(self, tenant_id: str, rule_id: str) -> CommissionRule:
        return self._set_active(tenant_id, rule_id, False)

    def delete_rule(self, tenant_id: str, rule_id: str) -> None:
        """Delete a rule no commission item references."""
        rule = self.get_rule(tenant_id, rule_id)
        if self.item_reader is not None:
            in_use = self.item_reader.count_by_rule(rule.tenant_id, rule.id)
            if in_use:
                raise CommissionRuleInUse(rule_id=rule.id, items=in_use)
        if not self.rule_repo.delete(rule.tenant_id, rule.id):
            raise CommissionRuleNotFound(rule_id=rule.id)
        logger.info(
            "Commission rule deleted",
            extra={"context": {"rule_id": rule.id, "tenant_id": rule.tenant_id}},
        )

    def preview(self, tenant_id: str, rule_id: str, gross_value: Decimal) -> Decimal:
        """Commission the rule would produce for a gross value."""
        return self.get_rule(tenant_id, rule_id).calculate(gross_value)

    def _set_active(self, tenant_id: str, rule_id: str, active: bool) -> CommissionRule:
        rule = self.get_rule(tenant_id, rule_id)
        if not self.rule_repo.set_active(rule.tenant_id, rule.id, active):
            raise CommissionRuleNotFound(rule_id=rule.id)
        rule.is_active = active
        return rule

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(
        self,
        tenant_id: str,
        unit_id: Optional[str],
        on: date,
        rule_id: Optional[str] = None,
    ) -> Optional[CommissionRule]:
        """Rule applying to a unit on a date.

        An explicit rule_id bypasses resolution. Otherwise the unit-scoped
        rule wins over the global one; inside a scope the lowest priority
        number wins, then the most recently created rule.
        """
        tenant_id = require_uuid(tenant_id, "tenant_id")
        unit_id = optional_uuid(unit_id, "unit_id")

        if rule_id:
            return self.get_rule(tenant_id, rule_id)

        rule = None
        if unit_id:
            rule = self.rule_repo.get_effective_by_unit(tenant_id, unit_id, on)
        if rule is None:
            rule = self.rule_repo.get_effective_global(tenant_id, on)
        if rule is None:
            logger.debug(
                "No commission rule effective",
                extra={
                    "context": {
                        "tenant_id": tenant_id,
                        "unit_id": unit_id,
                        "date": on.isoformat(),
                    }
                },
            )
        return rule

    def resolve_commission(
        self,
        tenant_id: str,
        unit_id: Optional[str],
        on: date,
        rule_id: Optional[str] = None,
    ) -> Optional[ResolvedCommission]:
        """Like `resolve`, tagged MANUAL for an explicit rule and REGRA otherwise."""
        rule = self.resolve(tenant_id, unit_id, on, rule_id=rule_id)
        if rule is None:
            return None
        source = CommissionSource.MANUAL if rule_id else CommissionSource.REGRA
        return self._from_rule(rule, source)

    def resolve_request(self, request: RuleResolutionRequest) -> Optional[ResolvedCommission]:
        request.validate()
        return self.resolve_commission(
            request.tenant_id, request.unit_id, request.on_date, request.rule_id
        )

    def resolve_for_sale(
        self,
        tenant_id: str,
        professional_id: str,
        unit_id: Optional[str] = None,
        on: Optional[date] = None,
        service_commission_rate: Optional[Decimal] = None,
        rule_id: Optional[str] = None,
    ) -> Optional[ResolvedCommission]:
        """Commission for one sold line.

        Order: explicit rule (MANUAL), rate configured on the service
        (SERVICO), rate configured on the professional (PROFISSIONAL), then
        the unit rule and the global rule (REGRA).
        """
        on = on or datetime.now(config.APP_TZ).date()

        if rule_id:
            return self.resolve_commission(tenant_id, unit_id, on, rule_id=rule_id)

        if service_commission_rate is not None and service_commission_rate > 0:
            return ResolvedCommission(
                source=CommissionSource.SERVICO,
                commission_type=CommissionType.PERCENTUAL,
                rate=service_commission_rate,
                calculation_base=CalculationBase.BRUTO,
            )

        professional_rate = self._professional_rate(tenant_id, professional_id)
        if professional_rate is not None:
            return professional_rate

        return self.resolve_commission(tenant_id, unit_id, on)

    def _professional_rate(
        self, tenant_id: str, professional_id: str
    ) -> Optional[ResolvedCommission]:
        if self.professional_directory is None:
            return None
        try:
            professional = self.professional_directory.find_by_id(
                tenant_id, professional_id
            )
        except Exception as e:
            logger.warning(
                "Professional lookup failed, falling back to commission rules",
                extra={"context": {"professional_id": professional_id, "error": str(e)}},
                exc_info=True,
            )
            return None

        if professional is None or not professional.commission_rate:
            return None
        commission_type = professional.commission_type or CommissionType.PERCENTUAL
        if commission_type not in CommissionType.ALL:
            commission_type = CommissionType.PERCENTUAL
        return ResolvedCommission(
            source=CommissionSource.PROFISSIONAL,
            commission_type=commission_type,
            rate=professional.commission_rate,
            calculation_base=CalculationBase.BRUTO,
        )

    @staticmethod
    def _from_rule(rule: CommissionRule, source: str) -> ResolvedCommission:
        return ResolvedCommission(
            source=source,
            commission_type=rule.type,
            rate=rule.default_rate,
            calculation_base=rule.calculation_base,
            rule=rule,
        )

"""
Commission period use-cases and the close procedure.

Close runs in two parts:

1. Inside one transaction: load the period, deduct the professional's
   approved advances (each in its own savepoint, so one failing advance is
   skipped), recompute the totals and move the period to FECHADO. If the
   status write fails, everything in this part is rolled back and the error
   reaches the caller.
2. After commit, best-effort: emit the payable for a positive net amount
   (idempotent per period), link it to the period and assign the
   professional's PENDENTE items in the period range. Failures here are
   logged and reported on the result. `reconcile_closed_period` retries
   them for a period that is already FECHADO.
"""

import calendar
import logging
from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple

from commission_engine.core import config
from commission_engine.core.exceptions import (
    CommissionPeriodNotFound,
    PeriodCannotClose,
    PeriodCannotDelete,
    PeriodCannotPay,
    PeriodCannotReconcile,
    ValidationError,
)
from commission_engine.core.validation import optional_uuid, require_uuid
from commission_engine.domain.entities import (
    ZERO,
    Advance,
    ClosePeriodResult,
    CommissionPeriod,
    CommissionPeriodStatus,
    CommissionPeriodSummary,
    Payable,
    quantize_money,
)
from commission_engine.domain.interfaces import (
    IAdvanceRepository,
    ICommissionItemRepository,
    ICommissionPeriodRepository,
    IPayableEmitter,
    IProfessionalDirectory,
    ITransactionManager,
)
from commission_engine.schemas.dtos import OpenPeriodRequest, PeriodListRequest

logger = logging.getLogger(__name__)

PAYABLE_COST_TYPE = "VARIAVEL"


def month_bounds(reference_month: str) -> Tuple[date, date]:
    """First and last calendar day of a YYYY-MM month."""
    year, month = (int(part) for part in reference_month.split("-"))
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def payable_reference_key(period_id: str) -> str:
    return f"commission-period:{period_id}"


class CommissionPeriodService:
    def __init__(
        self,
        period_repo: ICommissionPeriodRepository,
        advance_repo: IAdvanceRepository,
        item_repo: ICommissionItemRepository,
        payable_emitter: IPayableEmitter,
        professional_directory: IProfessionalDirectory,
        transaction_manager: ITransactionManager,
    ):
        self.period_repo = period_repo
        self.advance_repo = advance_repo
        self.item_repo = item_repo
        self.payable_emitter = payable_emitter
        self.professional_directory = professional_directory
        self.transaction_manager = transaction_manager

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def get_or_create_open_period(self, request: OpenPeriodRequest) -> CommissionPeriod:
        """Return the professional's ABERTO period, creating it when missing."""
        request.validate()

        existing = self.period_repo.get_open_by_professional(
            request.tenant_id, request.professional_id
        )
        if existing:
            return existing

        default_start, default_end = month_bounds(request.reference_month)
        try:
            period = CommissionPeriod(
                tenant_id=request.tenant_id,
                unit_id=request.unit_id,
                professional_id=request.professional_id,
                reference_month=request.reference_month,
                period_start=request.period_start or default_start,
                period_end=request.period_end or default_end,
                notes=request.notes,
            )
        except ValueError as e:
            raise ValidationError(str(e)) from e

        return self.period_repo.get_or_create_open(period)

    def get_period(self, tenant_id: str, period_id: str) -> CommissionPeriod:
        tenant_id = require_uuid(tenant_id, "tenant_id")
        period_id = require_uuid(period_id, "period_id")
        period = self.period_repo.get_by_id(tenant_id, period_id)
        if not period:
            raise CommissionPeriodNotFound(period_id=period_id)
        return period

    def get_open_period(
        self, tenant_id: str, professional_id: str
    ) -> Optional[CommissionPeriod]:
        return self.period_repo.get_open_by_professional(
            require_uuid(tenant_id, "tenant_id"),
            require_uuid(professional_id, "professional_id"),
        )

    def list_periods(self, request: PeriodListRequest) -> List[CommissionPeriod]:
        request.validate()
        return self.period_repo.list(
            request.tenant_id,
            professional_id=request.professional_id,
            unit_id=request.unit_id,
            status=request.status,
            reference_month=request.reference_month,
            limit=request.limit,
            offset=request.offset,
        )

    def get_summary(self, tenant_id: str, period_id: str) -> CommissionPeriodSummary:
        period = self.get_period(tenant_id, period_id)
        summary = self.period_repo.get_summary(period.tenant_id, period.id)
        return summary or CommissionPeriodSummary()

    def refresh_totals(self, tenant_id: str, period_id: str) -> CommissionPeriod:
        """Recompute the running totals of an open period from its items."""
        period = self.get_period(tenant_id, period_id)
        if not period.can_close():
            raise PeriodCannotClose(
                "Somente períodos abertos podem ser recalculados",
                period_id=period.id,
                status=period.status,
            )

        summary = self.period_repo.get_summary(period.tenant_id, period.id)
        advances = ZERO
        if period.professional_id:
            advances = self.advance_repo.sum_approved(
                period.tenant_id, period.professional_id
            )
        if summary is not None:
            period.update_totals(
                summary.total_gross,
                summary.total_commission,
                advances,
                summary.items_count,
            )
        else:
            period.update_totals(
                period.total_gross, period.total_commission, advances, period.items_count
            )
        period.updated_at = self._now()

        if not self.period_repo.update(period):
            raise PeriodCannotClose(period_id=period.id)
        return period

    def mark_as_paid(
        self, tenant_id: str, period_id: str, paid_by: Optional[str] = None
    ) -> CommissionPeriod:
        paid_by = optional_uuid(paid_by, "paid_by")
        period = self.get_period(tenant_id, period_id)
        if not period.can_pay():
            raise PeriodCannotPay(period_id=period.id, status=period.status)
        if not self.period_repo.mark_as_paid(
            period.tenant_id, period.id, paid_by, self._now()
        ):
            raise PeriodCannotPay(period_id=period.id)
        logger.info(
            "Commission period paid",
            extra={"context": {"period_id": period.id, "paid_by": paid_by}},
        )
        return self.get_period(period.tenant_id, period.id)

    def delete_period(self, tenant_id: str, period_id: str) -> None:
        period = self.get_period(tenant_id, period_id)
        if not period.can_delete():
            raise PeriodCannotDelete(period_id=period.id, status=period.status)
        if not self.period_repo.delete(period.tenant_id, period.id):
            raise PeriodCannotDelete(period_id=period.id)
        logger.info(
            "Commission period deleted",
            extra={"context": {"period_id": period.id, "tenant_id": period.tenant_id}},
        )

    # ------------------------------------------------------------------
    # Close
    # ------------------------------------------------------------------

    def close_period(
        self, tenant_id: str, period_id: str, closed_by: Optional[str] = None
    ) -> ClosePeriodResult:
        tenant_id = require_uuid(tenant_id, "tenant_id")
        period_id = require_uuid(period_id, "period_id")
        closed_by = optional_uuid(closed_by, "closed_by")
        closed_at = self._now()

        log_context = {"period_id": period_id, "tenant_id": tenant_id}
        logger.info("Closing commission period", extra={"context": log_context})

        with self.transaction_manager.atomic():
            period = self.period_repo.get_by_id(tenant_id, period_id)
            if period is None:
                raise CommissionPeriodNotFound(period_id=period_id)
            if not period.can_close():
                raise PeriodCannotClose(period_id=period.id, status=period.status)

            result = ClosePeriodResult(period=period)
            log_context["professional_id"] = period.professional_id

            if period.professional_id:
                self._deduct_advances(period, closed_at, result)

            total_commission = period.total_commission
            total_gross = period.total_gross
            items_count = period.items_count
            summary = self._period_summary(period, result)
            if summary is not None:
                total_commission = summary.total_commission
                total_gross = summary.total_gross
                items_count = summary.items_count

            period.update_totals(
                total_gross, total_commission, result.total_advances_amount, items_count
            )

            if not self.period_repo.close(period, closed_by, closed_at):
                # Lost the race against another close
                raise PeriodCannotClose(period_id=period.id)

            period.status = CommissionPeriodStatus.FECHADO
            period.closed_by = closed_by
            period.closed_at = closed_at

        if period.total_net > 0 and period.professional_id:
            result.payable = self._emit_payable(period, closed_at, result)

        if period.professional_id:
            result.items_processed = self._assign_items(period, closed_at, result)

        logger.info(
            "Commission period closed",
            extra={
                "context": {
                    **log_context,
                    "total_commission": str(period.total_commission),
                    "total_advances": str(period.total_advances),
                    "total_net": str(period.total_net),
                    "advances_deducted": result.advances_deducted,
                    "items_processed": result.items_processed,
                    "conta_pagar_id": period.conta_pagar_id,
                }
            },
        )
        return result

    def reconcile_closed_period(self, tenant_id: str, period_id: str) -> ClosePeriodResult:
        """Retry the after-close steps of a FECHADO period.

        Emits (or finds, by reference key) the payable when the net is positive
        and none is linked yet, links it, and assigns the PENDENTE items still
        inside the period range. Safe to call repeatedly.
        """
        period = self.get_period(tenant_id, period_id)
        if period.status != CommissionPeriodStatus.FECHADO:
            raise PeriodCannotReconcile(period_id=period.id, status=period.status)

        result = ClosePeriodResult(
            period=period, total_advances_amount=period.total_advances
        )
        closed_at = period.closed_at or self._now()

        if (
            period.total_net > 0
            and period.professional_id
            and period.conta_pagar_id is None
        ):
            result.payable = self._emit_payable(period, closed_at, result)

        if period.professional_id:
            result.items_processed = self._assign_items(period, self._now(), result)

        logger.info(
            "Commission period reconciled",
            extra={
                "context": {
                    "period_id": period.id,
                    "conta_pagar_id": period.conta_pagar_id,
                    "items_processed": result.items_processed,
                    "warnings": result.warnings,
                }
            },
        )
        return result

    def _deduct_advances(
        self, period: CommissionPeriod, at: datetime, result: ClosePeriodResult
    ) -> None:
        try:
            with self.transaction_manager.savepoint():
                advances = self.advance_repo.get_approved_by_professional(
                    period.tenant_id, period.professional_id
                )
        except Exception as e:
            result.advances_lookup_failed = True
            result.warnings.append("advances_lookup_failed")
            logger.warning(
                "Could not load approved advances, closing with zero advances",
                extra={
                    "context": {
                        "period_id": period.id,
                        "professional_id": period.professional_id,
                        "error": str(e),
                    }
                },
                exc_info=True,
            )
            return

        total = ZERO
        for advance in advances:
            if self._deduct_one(period, advance, at):
                total += advance.amount
                result.advances_deducted += 1
            else:
                result.warnings.append(f"advance_not_deducted:{advance.id}")
        result.total_advances_amount = quantize_money(total)

    def _deduct_one(self, period: CommissionPeriod, advance: Advance, at: datetime) -> bool:
        context = {
            "period_id": period.id,
            "professional_id": period.professional_id,
            "advance_id": advance.id,
        }
        try:
            with self.transaction_manager.savepoint():
                deducted = self.advance_repo.mark_deducted(
                    period.tenant_id, advance.id, period.id, at
                )
        except Exception as e:
            logger.error(
                "Failed to deduct advance, skipping",
                extra={"context": {**context, "error": str(e)}},
                exc_info=True,
            )
            return False

        if not deducted:
            logger.warning(
                "Advance is no longer APPROVED, skipping", extra={"context": context}
            )
        return deducted

    def _period_summary(
        self, period: CommissionPeriod, result: ClosePeriodResult
    ) -> Optional[CommissionPeriodSummary]:
        try:
            with self.transaction_manager.savepoint():
                summary = self.period_repo.get_summary(period.tenant_id, period.id)
        except Exception as e:
            summary = None
            logger.warning(
                "Could not summarize period items, using stored totals",
                extra={"context": {"period_id": period.id, "error": str(e)}},
                exc_info=True,
            )
        if summary is None:
            result.summary_fallback = True
            result.warnings.append("summary_fallback")
        return summary

    def _emit_payable(
        self, period: CommissionPeriod, closed_at: datetime, result: ClosePeriodResult
    ) -> Optional[Payable]:
        name = self._professional_name(period)
        try:
            payable = Payable(
                tenant_id=period.tenant_id,
                description=f"Comissão {period.reference_month} - {name}",
                category=config.PAYABLE_CATEGORY,
                supplier=name,
                amount=period.total_net,
                due_date=closed_at.date() + timedelta(days=config.PAYABLE_DUE_DAYS),
                cost_type=PAYABLE_COST_TYPE,
                recurring=False,
                observations=(
                    "Período de comissão: "
                    f"{period.period_start:%d/%m/%Y} a {period.period_end:%d/%m/%Y}"
                ),
                reference_key=payable_reference_key(period.id),
            )
            created = self.payable_emitter.create(payable)
        except Exception as e:
            result.warnings.append("payable_not_emitted")
            logger.error(
                "Failed to emit payable for closed period",
                extra={
                    "context": {
                        "period_id": period.id,
                        "professional_id": period.professional_id,
                        "total_net": str(period.total_net),
                        "error": str(e),
                    }
                },
                exc_info=True,
            )
            return None

        try:
            self.period_repo.link_payable(period.tenant_id, period.id, created.id)
            period.conta_pagar_id = created.id
        except Exception as e:
            result.warnings.append("payable_not_linked")
            logger.error(
                "Payable emitted but not linked to period",
                extra={
                    "context": {
                        "period_id": period.id,
                        "conta_pagar_id": created.id,
                        "error": str(e),
                    }
                },
                exc_info=True,
            )
        return created

    def _assign_items(
        self, period: CommissionPeriod, at: datetime, result: ClosePeriodResult
    ) -> int:
        try:
            return self.item_repo.assign_to_period(
                period.tenant_id,
                period.professional_id,
                period.id,
                period.period_start,
                period.period_end,
                at,
            )
        except Exception as e:
            result.warnings.append("items_not_assigned")
            logger.error(
                "Failed to assign items to closed period",
                extra={
                    "context": {
                        "period_id": period.id,
                        "professional_id": period.professional_id,
                        "error": str(e),
                    }
                },
                exc_info=True,
            )
            return 0

    def _professional_name(self, period: CommissionPeriod) -> str:
        try:
            professional = self.professional_directory.find_by_id(
                period.tenant_id, period.professional_id
            )
        except Exception as e:
            logger.warning(
                "Professional lookup failed, using placeholder name",
                extra={
                    "context": {
                        "professional_id": period.professional_id,
                        "error": str(e),
                    }
                },
                exc_info=True,
            )
            return config.PROFESSIONAL_PLACEHOLDER
        if professional is None or not professional.name:
            return config.PROFESSIONAL_PLACEHOLDER
        return professional.name

    @staticmethod
    def _now() -> datetime:
        return datetime.now(config.APP_TZ)

"""
Commission HTTP API.

Thin JSON layer: reads the tenant from the X-Tenant-ID header and the acting
user from X-User-ID, builds request DTOs, calls the services and maps engine
errors to status codes through `error_response`.
"""

import logging
from decimal import Decimal
from functools import wraps
from typing import Optional

from flask import Blueprint, request
from sqlalchemy.orm import Session

from commission_engine.core import config
from commission_engine.core.api_utils import api_response, error_response, to_json_value
from commission_engine.core.exceptions import CommissionError
from commission_engine.core.validation import BaseValidator, ValidationResult
from commission_engine.db.session import SessionLocal
from commission_engine.db.transaction import (
    NullTransactionManager,
    SQLAlchemyTransactionManager,
)
from commission_engine.repositories.advance_repo import AdvanceRepository
from commission_engine.repositories.commission_item_repo import CommissionItemRepository
from commission_engine.repositories.commission_period_repo import (
    CommissionPeriodRepository,
)
from commission_engine.repositories.commission_rule_repo import CommissionRuleRepository
from commission_engine.repositories.conta_pagar_repo import ContaPagarRepository
from commission_engine.repositories.professional_repo import ProfessionalRepository
from commission_engine.schemas.dtos import (
    AdvanceCreateRequest,
    AdvanceListRequest,
    AdvanceRejectRequest,
    ClosePeriodResponse,
    CommissionItemCreateRequest,
    CommissionItemListRequest,
    CommissionItemUpdateRequest,
    CommissionRuleCreateRequest,
    CommissionRuleUpdateRequest,
    DateRangeRequest,
    OpenPeriodRequest,
    PeriodListRequest,
    RuleResolutionRequest,
    SaleCommissionRequest,
    to_response,
    to_response_list,
)
from commission_engine.services.advance_service import AdvanceService
from commission_engine.services.commission_item_service import CommissionItemService
from commission_engine.services.commission_period_service import (
    CommissionPeriodService,
)
from commission_engine.services.commission_rule_service import CommissionRuleService

logger = logging.getLogger(__name__)

commission_bp = Blueprint("commissions", __name__, url_prefix="/api/commissions")


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def _rule_service(db: Session) -> CommissionRuleService:
    return CommissionRuleService(
        CommissionRuleRepository(db),
        item_reader=CommissionItemRepository(db),
        professional_directory=ProfessionalRepository(db),
    )


def _item_service(db: Session) -> CommissionItemService:
    return CommissionItemService(CommissionItemRepository(db), _rule_service(db))


def _advance_service(db: Session) -> AdvanceService:
    return AdvanceService(AdvanceRepository(db))


def _period_service(db: Session) -> CommissionPeriodService:
    transaction_manager = (
        SQLAlchemyTransactionManager(db)
        if config.ATOMIC_CLOSE
        else NullTransactionManager()
    )
    return CommissionPeriodService(
        CommissionPeriodRepository(db),
        AdvanceRepository(db),
        CommissionItemRepository(db),
        ContaPagarRepository(db),
        ProfessionalRepository(db),
        transaction_manager,
    )


def with_session(f):
    """Open a session for the request and translate engine errors."""

    @wraps(f)
    def wrapper(*args, **kwargs):
        db = SessionLocal()
        try:
            return f(db, *args, **kwargs)
        except CommissionError as e:
            return error_response(e)
        finally:
            db.close()

    return wrapper


def _tenant_id():
    return request.headers.get("X-Tenant-ID") or request.args.get("tenant_id")


def _user_id(body: Optional[dict] = None, key: str = "user_id"):
    """Acting user from X-User-ID, falling back to a body field."""
    header = request.headers.get("X-User-ID")
    if header:
        return header
    return (body or {}).get(key)


def _body() -> dict:
    return request.get_json(silent=True) or {}


def _query_args() -> dict:
    return request.args.to_dict()


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


@commission_bp.route("/rules", methods=["GET"])
@with_session
def list_rules(db):
    active_only = request.args.get("active_only", "").lower() in ("1", "true", "yes")
    rules = _rule_service(db).list_rules(_tenant_id(), active_only=active_only)
    return api_response(True, "Regras de comissão", to_response_list(rules))


@commission_bp.route("/rules", methods=["POST"])
@with_session
def create_rule(db):
    body = _body()
    dto = CommissionRuleCreateRequest.from_dict(
        body, tenant_id=_tenant_id(), created_by=_user_id(body, "created_by")
    )
    rule = _rule_service(db).create_rule(dto)
    return api_response(True, "Regra de comissão criada", to_response(rule), 201)


@commission_bp.route("/rules/resolve", methods=["GET"])
@with_session
def resolve_rule(db):
    dto = RuleResolutionRequest.from_dict(_query_args(), tenant_id=_tenant_id())
    resolved = _rule_service(db).resolve_request(dto)
    if resolved is None:
        return api_response(True, "Nenhuma regra vigente", None)
    return api_response(True, "Regra vigente", to_response(resolved))


@commission_bp.route("/rules/<rule_id>", methods=["GET"])
@with_session
def get_rule(db, rule_id):
    rule = _rule_service(db).get_rule(_tenant_id(), rule_id)
    return api_response(True, "Regra de comissão", to_response(rule))


@commission_bp.route("/rules/<rule_id>", methods=["PUT"])
@with_session
def update_rule(db, rule_id):
    dto = CommissionRuleUpdateRequest.from_dict(_body())
    rule = _rule_service(db).update_rule(_tenant_id(), rule_id, dto)
    return api_response(True, "Regra de comissão atualizada", to_response(rule))


@commission_bp.route("/rules/<rule_id>/activate", methods=["POST"])
@with_session
def activate_rule(db, rule_id):
    rule = _rule_service(db).activate_rule(_tenant_id(), rule_id)
    return api_response(True, "Regra ativada", to_response(rule))


@commission_bp.route("/rules/<rule_id>/deactivate", methods=["POST"])
@with_session
def deactivate_rule(db, rule_id):
    rule = _rule_service(db).deactivate_rule(_tenant_id(), rule_id)
    return api_response(True, "Regra desativada", to_response(rule))


@commission_bp.route("/rules/<rule_id>", methods=["DELETE"])
@with_session
def delete_rule(db, rule_id):
    _rule_service(db).delete_rule(_tenant_id(), rule_id)
    return api_response(True, "Regra de comissão removida")


@commission_bp.route("/rules/<rule_id>/preview", methods=["GET"])
@with_session
def preview_rule(db, rule_id):
    result = ValidationResult()
    raw = request.args.get("gross_value")
    BaseValidator.validate_required_field(raw, "gross_value", result)
    gross_value = BaseValidator.validate_decimal(
        raw,
        "gross_value",
        result,
        min_value=Decimal("0"),
        exclusive_min=True,
    )
    result.raise_if_invalid()
    value = _rule_service(db).preview(_tenant_id(), rule_id, gross_value)
    return api_response(
        True,
        "Simulação de comissão",
        {"gross_value": to_json_value(gross_value), "commission_value": to_json_value(value)},
    )


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------


@commission_bp.route("/items", methods=["GET"])
@with_session
def list_items(db):
    dto = CommissionItemListRequest.from_dict(_query_args(), tenant_id=_tenant_id())
    items = _item_service(db).list_items(dto)
    return api_response(True, "Itens de comissão", to_response_list(items))


@commission_bp.route("/items", methods=["POST"])
@with_session
def create_item(db):
    dto = CommissionItemCreateRequest.from_dict(_body(), tenant_id=_tenant_id())
    item = _item_service(db).create_item(dto)
    return api_response(True, "Item de comissão criado", to_response(item), 201)


@commission_bp.route("/items/batch", methods=["POST"])
@with_session
def create_items_batch(db):
    payload = _body().get("items") or []
    dtos = [
        CommissionItemCreateRequest.from_dict(entry, tenant_id=_tenant_id())
        for entry in payload
        if isinstance(entry, dict)
    ]
    items = _item_service(db).create_batch(dtos)
    return api_response(
        True, f"{len(items)} itens de comissão criados", to_response_list(items), 201
    )


@commission_bp.route("/items/from-sale", methods=["POST"])
@with_session
def create_item_from_sale(db):
    dto = SaleCommissionRequest.from_dict(_body(), tenant_id=_tenant_id())
    item = _item_service(db).create_from_sale(dto)
    if item is None:
        return api_response(True, "Nenhuma comissão aplicável", None)
    return api_response(True, "Item de comissão criado", to_response(item), 201)


@commission_bp.route("/items/<item_id>", methods=["GET"])
@with_session
def get_item(db, item_id):
    item = _item_service(db).get_item(_tenant_id(), item_id)
    return api_response(True, "Item de comissão", to_response(item))


@commission_bp.route("/items/<item_id>", methods=["PUT"])
@with_session
def update_item(db, item_id):
    dto = CommissionItemUpdateRequest.from_dict(_body())
    item = _item_service(db).update_item(_tenant_id(), item_id, dto)
    return api_response(True, "Item de comissão atualizado", to_response(item))


@commission_bp.route("/items/<item_id>/process", methods=["POST"])
@with_session
def process_item(db, item_id):
    item = _item_service(db).process(_tenant_id(), item_id, _body().get("period_id"))
    return api_response(True, "Item de comissão processado", to_response(item))


@commission_bp.route("/items/<item_id>", methods=["DELETE"])
@with_session
def delete_item(db, item_id):
    _item_service(db).delete_item(_tenant_id(), item_id)
    return api_response(True, "Item de comissão removido")


@commission_bp.route("/items/by-command/<command_id>", methods=["GET"])
@with_session
def list_items_by_command(db, command_id):
    items = _item_service(db).list_by_command(_tenant_id(), command_id)
    return api_response(True, "Itens de comissão da comanda", to_response_list(items))


@commission_bp.route("/items/by-command-item/<command_item_id>", methods=["DELETE"])
@with_session
def delete_item_by_command_item(db, command_item_id):
    removed = _item_service(db).delete_by_command_item(_tenant_id(), command_item_id)
    return api_response(True, "Comissão cancelada", {"removed": removed})


@commission_bp.route("/summary/total", methods=["GET"])
@with_session
def summary_total(db):
    dto = DateRangeRequest.from_dict(_query_args(), tenant_id=_tenant_id())
    total = _item_service(db).sum_by_date_range(dto)
    return api_response(True, "Total de comissões", {"total": to_json_value(total)})


@commission_bp.route("/summary/by-professional", methods=["GET"])
@with_session
def summary_by_professional(db):
    dto = DateRangeRequest.from_dict(_query_args(), tenant_id=_tenant_id())
    rows = _item_service(db).summary_by_professional(dto)
    return api_response(True, "Comissões por profissional", to_response_list(rows))


@commission_bp.route("/summary/by-service", methods=["GET"])
@with_session
def summary_by_service(db):
    dto = DateRangeRequest.from_dict(_query_args(), tenant_id=_tenant_id())
    rows = _item_service(db).summary_by_service(dto)
    return api_response(True, "Comissões por serviço", to_response_list(rows))


# ---------------------------------------------------------------------------
# Advances
# ---------------------------------------------------------------------------


@commission_bp.route("/advances", methods=["GET"])
@with_session
def list_advances(db):
    dto = AdvanceListRequest.from_dict(_query_args(), tenant_id=_tenant_id())
    advances = _advance_service(db).list_advances(dto)
    return api_response(True, "Adiantamentos", to_response_list(advances))


@commission_bp.route("/advances", methods=["POST"])
@with_session
def create_advance(db):
    body = _body()
    dto = AdvanceCreateRequest.from_dict(
        body, tenant_id=_tenant_id(), created_by=_user_id(body, "created_by")
    )
    advance = _advance_service(db).create_advance(dto)
    return api_response(True, "Adiantamento solicitado", to_response(advance), 201)


@commission_bp.route("/advances/<advance_id>", methods=["GET"])
@with_session
def get_advance(db, advance_id):
    advance = _advance_service(db).get_advance(_tenant_id(), advance_id)
    return api_response(True, "Adiantamento", to_response(advance))


@commission_bp.route("/advances/<advance_id>/approve", methods=["POST"])
@with_session
def approve_advance(db, advance_id):
    advance = _advance_service(db).approve(
        _tenant_id(), advance_id, _user_id(_body(), "approved_by")
    )
    return api_response(True, "Adiantamento aprovado", to_response(advance))


@commission_bp.route("/advances/<advance_id>/reject", methods=["POST"])
@with_session
def reject_advance(db, advance_id):
    body = _body()
    dto = AdvanceRejectRequest.from_dict(body, rejected_by=_user_id(body, "rejected_by"))
    advance = _advance_service(db).reject(_tenant_id(), advance_id, dto)
    return api_response(True, "Adiantamento rejeitado", to_response(advance))


@commission_bp.route("/advances/<advance_id>/cancel", methods=["POST"])
@with_session
def cancel_advance(db, advance_id):
    advance = _advance_service(db).cancel(_tenant_id(), advance_id)
    return api_response(True, "Adiantamento cancelado", to_response(advance))


@commission_bp.route("/advances/<advance_id>", methods=["DELETE"])
@with_session
def delete_advance(db, advance_id):
    _advance_service(db).delete(_tenant_id(), advance_id)
    return api_response(True, "Adiantamento removido")


@commission_bp.route("/advances/balance/<professional_id>", methods=["GET"])
@with_session
def advance_balance(db, professional_id):
    balance = _advance_service(db).balance(_tenant_id(), professional_id)
    return api_response(
        True,
        "Saldo de adiantamentos",
        {key: to_json_value(value) for key, value in balance.items()},
    )


# ---------------------------------------------------------------------------
# Periods
# ---------------------------------------------------------------------------


@commission_bp.route("/periods", methods=["GET"])
@with_session
def list_periods(db):
    dto = PeriodListRequest.from_dict(_query_args(), tenant_id=_tenant_id())
    periods = _period_service(db).list_periods(dto)
    return api_response(True, "Períodos de comissão", to_response_list(periods))


@commission_bp.route("/periods", methods=["POST"])
@with_session
def open_period(db):
    dto = OpenPeriodRequest.from_dict(_body(), tenant_id=_tenant_id())
    period = _period_service(db).get_or_create_open_period(dto)
    return api_response(True, "Período de comissão aberto", to_response(period))


@commission_bp.route("/periods/open/<professional_id>", methods=["GET"])
@with_session
def get_open_period(db, professional_id):
    period = _period_service(db).get_open_period(_tenant_id(), professional_id)
    if period is None:
        return api_response(True, "Nenhum período aberto", None)
    return api_response(True, "Período de comissão aberto", to_response(period))


@commission_bp.route("/periods/<period_id>", methods=["GET"])
@with_session
def get_period(db, period_id):
    period = _period_service(db).get_period(_tenant_id(), period_id)
    return api_response(True, "Período de comissão", to_response(period))


@commission_bp.route("/periods/<period_id>/summary", methods=["GET"])
@with_session
def get_period_summary(db, period_id):
    summary = _period_service(db).get_summary(_tenant_id(), period_id)
    return api_response(True, "Resumo do período", to_response(summary))


@commission_bp.route("/periods/<period_id>/refresh", methods=["POST"])
@with_session
def refresh_period(db, period_id):
    period = _period_service(db).refresh_totals(_tenant_id(), period_id)
    return api_response(True, "Totais do período recalculados", to_response(period))


@commission_bp.route("/periods/<period_id>/close", methods=["POST"])
@with_session
def close_period(db, period_id):
    result = _period_service(db).close_period(
        _tenant_id(), period_id, _user_id(_body(), "closed_by")
    )
    return api_response(
        True,
        "Período de comissão fechado",
        ClosePeriodResponse.from_result(result).to_dict(),
    )


@commission_bp.route("/periods/<period_id>/reconcile", methods=["POST"])
@with_session
def reconcile_period(db, period_id):
    result = _period_service(db).reconcile_closed_period(_tenant_id(), period_id)
    return api_response(
        True,
        "Período de comissão reconciliado",
        ClosePeriodResponse.from_result(result).to_dict(),
    )


@commission_bp.route("/periods/<period_id>/pay", methods=["POST"])
@with_session
def pay_period(db, period_id):
    period = _period_service(db).mark_as_paid(
        _tenant_id(), period_id, _user_id(_body(), "paid_by")
    )
    return api_response(True, "Período de comissão pago", to_response(period))


@commission_bp.route("/periods/<period_id>", methods=["DELETE"])
@with_session
def delete_period(db, period_id):
    _period_service(db).delete_period(_tenant_id(), period_id)
    return api_response(True, "Período de comissão removido")

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from commission_engine.core import config

from .session import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(config.APP_TZ)


class CommissionRule(Base):
    """Commission rule, global (no unit) or scoped to a unit"""

    __tablename__ = "commission_rules"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    unit_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    default_rate: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    min_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    max_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    calculation_base: Mapped[str] = mapped_column(
        String(20), nullable=False, default="BRUTO"
    )
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    effective_to: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    priority: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), onupdate=_now
    )

    __table_args__ = (
        Index("ix_commission_rules_tenant_unit", "tenant_id", "unit_id"),
    )

    def __repr__(self):
        return f"<CommissionRule(id={self.id}, name='{self.name}', type={self.type})>"


class CommissionItem(Base):
    """One line of commission earned by a professional"""

    __tablename__ = "commission_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    unit_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    professional_id: Mapped[str] = mapped_column(String(36), nullable=False)
    command_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    command_item_id: Mapped[Optional[str]] = mapped_column(
        String(36), nullable=True, index=True
    )
    appointment_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    service_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    service_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    rule_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    gross_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    commission_rate: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    commission_type: Mapped[str] = mapped_column(String(20), nullable=False)
    commission_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    commission_source: Mapped[str] = mapped_column(String(20), nullable=False)
    reference_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDENTE")
    period_id: Mapped[Optional[str]] = mapped_column(
        String(36), nullable=True, index=True
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), onupdate=_now
    )

    __table_args__ = (
        Index(
            "ix_commission_items_professional_status_date",
            "tenant_id",
            "professional_id",
            "status",
            "reference_date",
        ),
    )

    def __repr__(self):
        return (
            f"<CommissionItem(id={self.id}, professional_id={self.professional_id}, "
            f"value={self.commission_value}, status={self.status})>"
        )


class Advance(Base):
    """Salary advance requested against future commission"""

    __tablename__ = "commission_advances"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    unit_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    professional_id: Mapped[str] = mapped_column(String(36), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    request_date: Mapped[date] = mapped_column(Date, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")
    approved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    approved_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    rejected_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    deducted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    deduction_period_id: Mapped[Optional[str]] = mapped_column(
        String(36), nullable=True, index=True
    )
    created_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), onupdate=_now
    )

    __table_args__ = (
        Index(
            "ix_commission_advances_professional_status",
            "tenant_id",
            "professional_id",
            "status",
        ),
    )

    def __repr__(self):
        return f"<Advance(id={self.id}, amount={self.amount}, status={self.status})>"


class CommissionPeriod(Base):
    """Monthly commission payout bucket"""

    __tablename__ = "commission_periods"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    unit_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    professional_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    reference_month: Mapped[str] = mapped_column(String(7), nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    total_gross: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0.00")
    )
    total_commission: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0.00")
    )
    total_advances: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0.00")
    )
    total_adjustments: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0.00")
    )
    total_net: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0.00")
    )
    items_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="ABERTO")
    conta_pagar_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    closed_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    paid_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), onupdate=_now
    )

    __table_args__ = (
        # At most one open period per professional within a tenant
        Index(
            "uq_commission_periods_open_professional",
            "tenant_id",
            "professional_id",
            unique=True,
            postgresql_where=text("status = 'ABERTO'"),
            sqlite_where=text("status = 'ABERTO'"),
        ),
        Index("ix_commission_periods_tenant_month", "tenant_id", "reference_month"),
    )

    def __repr__(self):
        return (
            f"<CommissionPeriod(id={self.id}, month={self.reference_month}, "
            f"status={self.status})>"
        )


class ContaPagar(Base):
    """Accounts payable record owned by the financial subsystem"""

    __tablename__ = "contas_pagar"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    descricao: Mapped[str] = mapped_column(String(255), nullable=False)
    categoria: Mapped[str] = mapped_column(String(50), nullable=False)
    fornecedor: Mapped[str] = mapped_column(String(200), nullable=False)
    valor: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    data_vencimento: Mapped[date] = mapped_column(Date, nullable=False)
    tipo: Mapped[str] = mapped_column(String(20), nullable=False, default="VARIAVEL")
    recorrente: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="ABERTO")
    observacoes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reference_key: Mapped[Optional[str]] = mapped_column(
        String(100), nullable=True, unique=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now
    )

    def __repr__(self):
        return f"<ContaPagar(id={self.id}, valor={self.valor}, vencimento={self.data_vencimento})>"


class Profissional(Base):
    """Professional (barber) as seen by the commission engine"""

    __tablename__ = "profissionais"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    nome: Mapped[str] = mapped_column(String(100), nullable=False)
    comissao: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    tipo_comissao: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    ativo: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now
    )

    def __repr__(self):
        return f"<Profissional(id={self.id}, nome='{self.nome}')>"

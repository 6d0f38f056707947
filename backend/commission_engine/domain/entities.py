"""
Domain entities - pure business logic, no framework dependencies.

Money and percentages are always Decimal. Status values are plain strings
grouped in small constant classes, the same representation used by the
database columns.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def quantize_money(value: Decimal) -> Decimal:
    """Round to the currency's minor unit (half away from zero)."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def new_id() -> str:
    return str(uuid.uuid4())


class CommissionType:
    PERCENTUAL = "PERCENTUAL"
    FIXO = "FIXO"

    ALL = [PERCENTUAL, FIXO]


class CalculationBase:
    BRUTO = "BRUTO"
    LIQUIDO = "LIQUIDO"

    ALL = [BRUTO, LIQUIDO]


class CommissionSource:
    SERVICO = "SERVICO"
    PROFISSIONAL = "PROFISSIONAL"
    REGRA = "REGRA"
    MANUAL = "MANUAL"

    ALL = [SERVICO, PROFISSIONAL, REGRA, MANUAL]


class CommissionItemStatus:
    PENDENTE = "PENDENTE"
    PROCESSADO = "PROCESSADO"

    ALL = [PENDENTE, PROCESSADO]


class AdvanceStatus:
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    DEDUCTED = "DEDUCTED"
    CANCELLED = "CANCELLED"

    ALL = [PENDING, APPROVED, REJECTED, DEDUCTED, CANCELLED]


class CommissionPeriodStatus:
    ABERTO = "ABERTO"
    FECHADO = "FECHADO"
    PAGO = "PAGO"

    ALL = [ABERTO, FECHADO, PAGO]


def calculate_commission_value(
    gross_value: Decimal, rate: Decimal, commission_type: str
) -> Decimal:
    """PERCENTUAL: gross * rate / 100; FIXO: the rate itself. Rounded to cents."""
    if commission_type == CommissionType.PERCENTUAL:
        return quantize_money(gross_value * rate / HUNDRED)
    return quantize_money(rate)


@dataclass
class CommissionRule:
    """Configuration deciding how much of a sale becomes commission."""

    tenant_id: str
    name: str
    type: str
    default_rate: Decimal
    effective_from: date
    id: str = field(default_factory=new_id)
    unit_id: Optional[str] = None
    description: Optional[str] = None
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    calculation_base: str = CalculationBase.BRUTO
    effective_to: Optional[date] = None
    priority: Optional[int] = None
    is_active: bool = True
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        """Validate domain rules."""
        if not self.tenant_id:
            raise ValueError("Tenant is required")
        if not self.name or not self.name.strip():
            raise ValueError("Name is required")
        if self.type not in CommissionType.ALL:
            raise ValueError("Invalid commission type")
        if self.calculation_base not in CalculationBase.ALL:
            raise ValueError("Invalid calculation base")
        if self.default_rate < 0:
            raise ValueError("Rate cannot be negative")
        if self.type == CommissionType.PERCENTUAL and self.default_rate > HUNDRED:
            raise ValueError("Percentage rate must be between 0 and 100")
        if self.effective_to is not None and self.effective_to < self.effective_from:
            raise ValueError("effective_to cannot be before effective_from")
        if (
            self.min_amount is not None
            and self.max_amount is not None
            and self.max_amount < self.min_amount
        ):
            raise ValueError("max_amount cannot be lower than min_amount")

    @property
    def is_global(self) -> bool:
        return self.unit_id is None

    def is_effective_on(self, on: date) -> bool:
        """Active and `effective_from <= on <= effective_to` (open-ended when unset)."""
        if not self.is_active:
            return False
        if on < self.effective_from:
            return False
        if self.effective_to is not None and on > self.effective_to:
            return False
        return True

    def calculate(self, gross_value: Decimal) -> Decimal:
        """Commission for a gross value, clamped to [min_amount, max_amount]."""
        if self.type == CommissionType.PERCENTUAL:
            commission = gross_value * self.default_rate / HUNDRED
        else:
            commission = self.default_rate

        if self.min_amount is not None and commission < self.min_amount:
            commission = self.min_amount
        if self.max_amount is not None and commission > self.max_amount:
            commission = self.max_amount

        return quantize_money(commission)


@dataclass
class CommissionItem:
    """One line of earned commission tied to a sold service or product.

    `commission_value` is derived from gross value, rate and type when the
    item is built and never recomputed afterwards.
    """

    tenant_id: str
    professional_id: str
    gross_value: Decimal
    commission_rate: Decimal
    commission_type: str
    commission_source: str
    reference_date: date
    id: str = field(default_factory=new_id)
    unit_id: Optional[str] = None
    command_id: Optional[str] = None
    command_item_id: Optional[str] = None
    appointment_id: Optional[str] = None
    service_id: Optional[str] = None
    service_name: Optional[str] = None
    rule_id: Optional[str] = None
    description: Optional[str] = None
    commission_value: Optional[Decimal] = None
    status: str = CommissionItemStatus.PENDENTE
    period_id: Optional[str] = None
    processed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        """Validate domain rules and derive the commission value."""
        if not self.tenant_id:
            raise ValueError("Tenant is required")
        if not self.professional_id:
            raise ValueError("Professional is required")
        if self.gross_value <= 0:
            raise ValueError("Gross value must be positive")
        if self.commission_type not in CommissionType.ALL:
            raise ValueError("Invalid commission type")
        if self.commission_source not in CommissionSource.ALL:
            raise ValueError("Invalid commission source")
        if self.commission_rate < 0:
            raise ValueError("Rate cannot be negative")
        if (
            self.commission_type == CommissionType.PERCENTUAL
            and self.commission_rate > HUNDRED
        ):
            raise ValueError("Percentage rate must be between 0 and 100")
        if self.status not in CommissionItemStatus.ALL:
            raise ValueError("Invalid commission item status")

        if self.commission_value is None:
            self.commission_value = calculate_commission_value(
                self.gross_value, self.commission_rate, self.commission_type
            )

    def can_process(self) -> bool:
        return self.status == CommissionItemStatus.PENDENTE

    def can_delete(self) -> bool:
        return self.status == CommissionItemStatus.PENDENTE


@dataclass
class Advance:
    """Money paid to a professional ahead of commission settlement."""

    tenant_id: str
    professional_id: str
    amount: Decimal
    request_date: date
    id: str = field(default_factory=new_id)
    unit_id: Optional[str] = None
    reason: Optional[str] = None
    status: str = AdvanceStatus.PENDING
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    deducted_at: Optional[datetime] = None
    deduction_period_id: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.tenant_id:
            raise ValueError("Tenant is required")
        if not self.professional_id:
            raise ValueError("Professional is required")
        if self.amount <= 0:
            raise ValueError("Amount must be positive")
        if self.status not in AdvanceStatus.ALL:
            raise ValueError("Invalid advance status")
        if self.status == AdvanceStatus.DEDUCTED and not self.deduction_period_id:
            raise ValueError("Deducted advance requires a deduction period")

    def can_approve(self) -> bool:
        return self.status == AdvanceStatus.PENDING

    def can_reject(self) -> bool:
        return self.status == AdvanceStatus.PENDING

    def can_deduct(self) -> bool:
        return self.status == AdvanceStatus.APPROVED

    def can_cancel(self) -> bool:
        return self.status in (AdvanceStatus.PENDING, AdvanceStatus.APPROVED)

    def can_delete(self) -> bool:
        return self.status == AdvanceStatus.PENDING


@dataclass
class CommissionPeriod:
    """Monthly payout bucket per professional."""

    tenant_id: str
    reference_month: str
    period_start: date
    period_end: date
    id: str = field(default_factory=new_id)
    unit_id: Optional[str] = None
    professional_id: Optional[str] = None
    total_gross: Decimal = ZERO
    total_commission: Decimal = ZERO
    total_advances: Decimal = ZERO
    total_adjustments: Decimal = ZERO
    total_net: Decimal = ZERO
    items_count: int = 0
    status: str = CommissionPeriodStatus.ABERTO
    conta_pagar_id: Optional[str] = None
    closed_at: Optional[datetime] = None
    closed_by: Optional[str] = None
    paid_at: Optional[datetime] = None
    paid_by: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.tenant_id:
            raise ValueError("Tenant is required")
        if not self.reference_month:
            raise ValueError("Reference month is required")
        if self.period_end < self.period_start:
            raise ValueError("period_end cannot be before period_start")
        if self.status not in CommissionPeriodStatus.ALL:
            raise ValueError("Invalid commission period status")

    def can_close(self) -> bool:
        return self.status == CommissionPeriodStatus.ABERTO

    def can_pay(self) -> bool:
        return self.status == CommissionPeriodStatus.FECHADO

    def can_delete(self) -> bool:
        return self.status == CommissionPeriodStatus.ABERTO

    def compute_net(
        self, total_commission: Decimal, total_advances: Decimal
    ) -> Decimal:
        """totalNet = totalCommission - totalAdvances + totalAdjustments."""
        return quantize_money(total_commission - total_advances + self.total_adjustments)

    def update_totals(
        self,
        total_gross: Decimal,
        total_commission: Decimal,
        total_advances: Decimal,
        items_count: int,
    ) -> None:
        self.total_gross = quantize_money(total_gross)
        self.total_commission = quantize_money(total_commission)
        self.total_advances = quantize_money(total_advances)
        self.total_net = self.compute_net(total_commission, total_advances)
        self.items_count = items_count


@dataclass
class CommissionPeriodSummary:
    """Aggregated totals of the items belonging to a period."""

    total_gross: Decimal = ZERO
    total_commission: Decimal = ZERO
    items_count: int = 0


@dataclass
class CommissionSummary:
    """Commission totals per professional over a date range."""

    professional_id: str
    total_gross: Decimal
    total_commission: Decimal
    items_count: int
    professional_name: Optional[str] = None


@dataclass
class CommissionByService:
    """Commission totals per service over a date range."""

    service_id: Optional[str]
    service_name: Optional[str]
    total_gross: Decimal
    total_commission: Decimal
    items_count: int


@dataclass
class Payable:
    """Accounts payable obligation handed to the financial subsystem."""

    tenant_id: str
    description: str
    category: str
    supplier: str
    amount: Decimal
    due_date: date
    cost_type: str = "VARIAVEL"
    recurring: bool = False
    observations: Optional[str] = None
    reference_key: Optional[str] = None
    id: Optional[str] = None

    def __post_init__(self):
        if self.amount <= 0:
            raise ValueError("Payable amount must be positive")
        if not self.description:
            raise ValueError("Description is required")


@dataclass
class Professional:
    """Read-only view of a professional from the directory."""

    id: str
    name: str
    commission_rate: Optional[Decimal] = None
    commission_type: Optional[str] = None


@dataclass
class ResolvedCommission:
    """Outcome of the rule hierarchy for one sale line."""

    source: str
    commission_type: str
    rate: Decimal
    calculation_base: str = CalculationBase.BRUTO
    rule: Optional[CommissionRule] = None

    @property
    def rule_id(self) -> Optional[str]:
        return self.rule.id if self.rule is not None else None


@dataclass
class ClosePeriodResult:
    """What the close actually achieved."""

    period: CommissionPeriod
    payable: Optional[Payable] = None
    advances_deducted: int = 0
    total_advances_amount: Decimal = ZERO
    items_processed: int = 0
    advances_lookup_failed: bool = False
    summary_fallback: bool = False
    warnings: List[str] = field(default_factory=list)

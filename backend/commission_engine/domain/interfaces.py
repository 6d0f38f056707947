"""
Abstract interfaces for the commission stores and external collaborators.

Services depend only on these contracts; the SQLAlchemy adapters live in
`commission_engine.repositories`. State transitions are exposed as guarded
writes returning False when the record is not in the required state.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from decimal import Decimal
from typing import ContextManager, List, Optional

from .entities import (
    Advance,
    CommissionByService,
    CommissionItem,
    CommissionPeriod,
    CommissionPeriodSummary,
    CommissionRule,
    CommissionSummary,
    Payable,
    Professional,
)


class ICommissionRuleReader(ABC):
    """Interface for commission rule read operations."""

    @abstractmethod
    def get_by_id(self, tenant_id: str, rule_id: str) -> Optional[CommissionRule]:
        """Get rule by ID."""
        pass

    @abstractmethod
    def list(self, tenant_id: str, active_only: bool = False) -> List[CommissionRule]:
        """List rules of a tenant."""
        pass

    @abstractmethod
    def list_active(self, tenant_id: str) -> List[CommissionRule]:
        """List active rules of a tenant."""
        pass

    @abstractmethod
    def get_effective(self, tenant_id: str, on: date) -> Optional[CommissionRule]:
        """Best effective rule of any scope on a date."""
        pass

    @abstractmethod
    def get_effective_by_unit(
        self, tenant_id: str, unit_id: str, on: date
    ) -> Optional[CommissionRule]:
        """Best effective rule scoped to the unit on a date."""
        pass

    @abstractmethod
    def get_effective_global(
        self, tenant_id: str, on: date
    ) -> Optional[CommissionRule]:
        """Best effective rule without unit on a date."""
        pass


class ICommissionRuleWriter(ABC):
    """Interface for commission rule write operations."""

    @abstractmethod
    def create(self, rule: CommissionRule) -> CommissionRule:
        """Create a new rule."""
        pass

    @abstractmethod
    def update(self, rule: CommissionRule) -> CommissionRule:
        """Update an existing rule."""
        pass

    @abstractmethod
    def set_active(self, tenant_id: str, rule_id: str, active: bool) -> bool:
        """Activate or deactivate a rule."""
        pass

    @abstractmethod
    def delete(self, tenant_id: str, rule_id: str) -> bool:
        """Delete a rule."""
        pass


class ICommissionRuleRepository(ICommissionRuleReader, ICommissionRuleWriter):
    """Complete commission rule repository interface."""

    pass


class IAdvanceReader(ABC):
    """Interface for advance read operations."""

    @abstractmethod
    def get_by_id(self, tenant_id: str, advance_id: str) -> Optional[Advance]:
        """Get advance by ID."""
        pass

    @abstractmethod
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
        """List advances matching the filters."""
        pass

    @abstractmethod
    def get_approved_by_professional(
        self, tenant_id: str, professional_id: str
    ) -> List[Advance]:
        """Approved advances not yet deducted."""
        pass

    @abstractmethod
    def get_pending_by_professional(
        self, tenant_id: str, professional_id: str
    ) -> List[Advance]:
        """Advances awaiting approval."""
        pass

    @abstractmethod
    def sum_approved(self, tenant_id: str, professional_id: str) -> Decimal:
        """Total of approved advances."""
        pass

    @abstractmethod
    def sum_pending(self, tenant_id: str, professional_id: str) -> Decimal:
        """Total of pending advances."""
        pass


class IAdvanceWriter(ABC):
    """Interface for advance write operations (guarded transitions)."""

    @abstractmethod
    def create(self, advance: Advance) -> Advance:
        """Create a new advance."""
        pass

    @abstractmethod
    def approve(
        self, tenant_id: str, advance_id: str, approved_by: str, at: datetime
    ) -> bool:
        """PENDING -> APPROVED."""
        pass

    @abstractmethod
    def reject(
        self,
        tenant_id: str,
        advance_id: str,
        rejected_by: str,
        reason: str,
        at: datetime,
    ) -> bool:
        """PENDING -> REJECTED."""
        pass

    @abstractmethod
    def mark_deducted(
        self, tenant_id: str, advance_id: str, period_id: str, at: datetime
    ) -> bool:
        """APPROVED -> DEDUCTED."""
        pass

    @abstractmethod
    def cancel(self, tenant_id: str, advance_id: str, at: datetime) -> bool:
        """PENDING|APPROVED -> CANCELLED."""
        pass

    @abstractmethod
    def delete(self, tenant_id: str, advance_id: str) -> bool:
        """Hard delete while PENDING."""
        pass


class IAdvanceRepository(IAdvanceReader, IAdvanceWriter):
    """Complete advance repository interface."""

    pass


class ICommissionItemReader(ABC):
    """Interface for commission item read operations."""

    @abstractmethod
    def get_by_id(self, tenant_id: str, item_id: str) -> Optional[CommissionItem]:
        """Get item by ID."""
        pass

    @abstractmethod
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
        """List items matching the filters."""
        pass

    @abstractmethod
    def get_by_command_item(
        self, tenant_id: str, command_item_id: str
    ) -> Optional[CommissionItem]:
        """Get the item created for a command line."""
        pass

    @abstractmethod
    def list_by_command(self, tenant_id: str, command_id: str) -> List[CommissionItem]:
        """Items created for a command."""
        pass

    @abstractmethod
    def get_pending_by_professional(
        self,
        tenant_id: str,
        professional_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[CommissionItem]:
        """PENDENTE items of a professional, optionally inside a date range."""
        pass

    @abstractmethod
    def count_by_rule(self, tenant_id: str, rule_id: str) -> int:
        """Number of items referencing a rule."""
        pass

    @abstractmethod
    def sum_by_date_range(
        self,
        tenant_id: str,
        start_date: date,
        end_date: date,
        unit_id: Optional[str] = None,
    ) -> Decimal:
        """Total commission value in a date range."""
        pass

    @abstractmethod
    def get_summary_by_professional(
        self,
        tenant_id: str,
        start_date: date,
        end_date: date,
        unit_id: Optional[str] = None,
    ) -> List[CommissionSummary]:
        """Commission totals grouped by professional."""
        pass

    @abstractmethod
    def get_summary_by_service(
        self,
        tenant_id: str,
        start_date: date,
        end_date: date,
        unit_id: Optional[str] = None,
    ) -> List[CommissionByService]:
        """Commission totals grouped by service."""
        pass


class ICommissionItemWriter(ABC):
    """Interface for commission item write operations."""

    @abstractmethod
    def create(self, item: CommissionItem) -> CommissionItem:
        """Create a new item."""
        pass

    @abstractmethod
    def create_batch(self, items: List[CommissionItem]) -> List[CommissionItem]:
        """Create several items in one unit of work."""
        pass

    @abstractmethod
    def update(self, item: CommissionItem) -> bool:
        """Update descriptive fields of a PENDENTE item."""
        pass

    @abstractmethod
    def process(
        self, tenant_id: str, item_id: str, period_id: str, at: datetime
    ) -> bool:
        """PENDENTE -> PROCESSADO."""
        pass

    @abstractmethod
    def assign_to_period(
        self,
        tenant_id: str,
        professional_id: str,
        period_id: str,
        start_date: date,
        end_date: date,
        at: datetime,
    ) -> int:
        """Bulk PENDENTE -> PROCESSADO for a professional's items in a range."""
        pass

    @abstractmethod
    def delete(self, tenant_id: str, item_id: str) -> bool:
        """Hard delete while PENDENTE."""
        pass


class ICommissionItemRepository(ICommissionItemReader, ICommissionItemWriter):
    """Complete commission item repository interface."""

    pass


class ICommissionPeriodReader(ABC):
    """Interface for commission period read operations."""

    @abstractmethod
    def get_by_id(self, tenant_id: str, period_id: str) -> Optional[CommissionPeriod]:
        """Get period by ID."""
        pass

    @abstractmethod
    def get_open_by_professional(
        self, tenant_id: str, professional_id: str
    ) -> Optional[CommissionPeriod]:
        """The ABERTO period of a professional, if any."""
        pass

    @abstractmethod
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
        """List periods matching the filters."""
        pass

    @abstractmethod
    def get_summary(
        self, tenant_id: str, period_id: str
    ) -> Optional[CommissionPeriodSummary]:
        """Totals of the items belonging to the period."""
        pass


class ICommissionPeriodWriter(ABC):
    """Interface for commission period write operations."""

    @abstractmethod
    def get_or_create_open(self, period: CommissionPeriod) -> CommissionPeriod:
        """Insert an ABERTO period or return the one that already exists."""
        pass

    @abstractmethod
    def update(self, period: CommissionPeriod) -> bool:
        """Persist totals, adjustments and notes of an ABERTO period."""
        pass

    @abstractmethod
    def close(
        self, period: CommissionPeriod, closed_by: Optional[str], at: datetime
    ) -> bool:
        """ABERTO -> FECHADO, writing the recomputed totals."""
        pass

    @abstractmethod
    def link_payable(self, tenant_id: str, period_id: str, conta_pagar_id: str) -> bool:
        """Record the payable emitted for the period."""
        pass

    @abstractmethod
    def mark_as_paid(
        self, tenant_id: str, period_id: str, paid_by: Optional[str], at: datetime
    ) -> bool:
        """FECHADO -> PAGO."""
        pass

    @abstractmethod
    def delete(self, tenant_id: str, period_id: str) -> bool:
        """Hard delete while ABERTO."""
        pass


class ICommissionPeriodRepository(ICommissionPeriodReader, ICommissionPeriodWriter):
    """Complete commission period repository interface."""

    pass


class IPayableEmitter(ABC):
    """Accounts payable subsystem."""

    @abstractmethod
    def create(self, payable: Payable) -> Payable:
        """Persist the payable and return it with its id.

        Emitting twice with the same reference key returns the first payable.
        """
        pass


class IProfessionalDirectory(ABC):
    """Read-only professional lookup."""

    @abstractmethod
    def find_by_id(self, tenant_id: str, professional_id: str) -> Optional[Professional]:
        """Get professional by ID."""
        pass


class ITransactionManager(ABC):
    """Unit-of-work boundary used by multi-step operations."""

    @abstractmethod
    def atomic(self) -> ContextManager[None]:
        """Everything inside commits together or not at all."""
        pass

    @abstractmethod
    def savepoint(self) -> ContextManager[None]:
        """Nested boundary whose failure does not undo the enclosing block."""
        pass

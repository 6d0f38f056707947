"""
Repository test factories following Interface Segregation Principle.

Mocks are built from the domain interfaces so tests fail when a service
calls something the port does not offer.
"""

from contextlib import nullcontext
from decimal import Decimal
from unittest.mock import Mock

from commission_engine.domain.interfaces import (
    IAdvanceRepository,
    ICommissionItemReader,
    ICommissionItemRepository,
    ICommissionPeriodRepository,
    ICommissionRuleRepository,
    IPayableEmitter,
    IProfessionalDirectory,
    ITransactionManager,
)


class CommissionRuleRepositoryFactory:
    @staticmethod
    def create_mock_full() -> Mock:
        mock_repo = Mock(spec=ICommissionRuleRepository)
        mock_repo.get_by_id.return_value = None
        mock_repo.get_effective_by_unit.return_value = None
        mock_repo.get_effective_global.return_value = None
        mock_repo.list.return_value = []
        mock_repo.list_active.return_value = []
        mock_repo.create.side_effect = lambda rule: rule
        mock_repo.update.side_effect = lambda rule: rule
        mock_repo.set_active.return_value = True
        mock_repo.delete.return_value = True
        return mock_repo


class AdvanceRepositoryFactory:
    @staticmethod
    def create_mock_full() -> Mock:
        mock_repo = Mock(spec=IAdvanceRepository)
        mock_repo.get_by_id.return_value = None
        mock_repo.get_approved_by_professional.return_value = []
        mock_repo.get_pending_by_professional.return_value = []
        mock_repo.sum_approved.return_value = Decimal("0.00")
        mock_repo.sum_pending.return_value = Decimal("0.00")
        mock_repo.create.side_effect = lambda advance: advance
        mock_repo.mark_deducted.return_value = True
        return mock_repo


class CommissionItemRepositoryFactory:
    @staticmethod
    def create_mock_reader() -> Mock:
        mock_reader = Mock(spec=ICommissionItemReader)
        mock_reader.count_by_rule.return_value = 0
        return mock_reader

    @staticmethod
    def create_mock_full() -> Mock:
        mock_repo = Mock(spec=ICommissionItemRepository)
        mock_repo.get_by_id.return_value = None
        mock_repo.get_by_command_item.return_value = None
        mock_repo.create.side_effect = lambda item: item
        mock_repo.create_batch.side_effect = lambda items: list(items)
        mock_repo.assign_to_period.return_value = 0
        mock_repo.count_by_rule.return_value = 0
        return mock_repo


class CommissionPeriodRepositoryFactory:
    @staticmethod
    def create_mock_full() -> Mock:
        mock_repo = Mock(spec=ICommissionPeriodRepository)
        mock_repo.get_by_id.return_value = None
        mock_repo.get_open_by_professional.return_value = None
        mock_repo.get_summary.return_value = None
        mock_repo.get_or_create_open.side_effect = lambda period: period
        mock_repo.update.return_value = True
        mock_repo.close.return_value = True
        mock_repo.link_payable.return_value = True
        mock_repo.mark_as_paid.return_value = True
        return mock_repo


class CollaboratorFactory:
    """Payable emitter, professional directory and transaction manager."""

    @staticmethod
    def create_payable_emitter() -> Mock:
        mock_emitter = Mock(spec=IPayableEmitter)

        def _create(payable):
            payable.id = "conta-1"
            return payable

        mock_emitter.create.side_effect = _create
        return mock_emitter

    @staticmethod
    def create_professional_directory() -> Mock:
        mock_directory = Mock(spec=IProfessionalDirectory)
        mock_directory.find_by_id.return_value = None
        return mock_directory

    @staticmethod
    def create_transaction_manager() -> Mock:
        mock_tm = Mock(spec=ITransactionManager)
        mock_tm.atomic.side_effect = lambda: nullcontext()
        mock_tm.savepoint.side_effect = lambda: nullcontext()
        return mock_tm

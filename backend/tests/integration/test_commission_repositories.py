"""
Repository integration tests against in-memory SQLite.

Exercises the persistence guarantees the services rely on:
- rule resolution ordering (scope, validity window, priority)
- guarded status transitions affecting zero rows when illegal
- one open period per professional
- idempotent bulk assignment and payable emission
"""

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from commission_engine.core.exceptions import ValidationError
from commission_engine.db.base import CommissionItem as CommissionItemModel
from commission_engine.db.base import Profissional
from commission_engine.domain.entities import (
    Advance,
    AdvanceStatus,
    CommissionItem,
    CommissionItemStatus,
    CommissionPeriod,
    CommissionPeriodStatus,
    CommissionRule,
    CommissionSource,
    CommissionType,
    Payable,
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
    CommissionItemCreateRequest,
)
from commission_engine.services.advance_service import AdvanceService
from commission_engine.services.commission_item_service import CommissionItemService
from commission_engine.services.commission_rule_service import CommissionRuleService

NOW = datetime(2025, 4, 1, 12, 0, tzinfo=timezone.utc)


def make_item(tenant_id, professional_id, **overrides) -> CommissionItem:
    data = {
        "tenant_id": tenant_id,
        "professional_id": professional_id,
        "gross_value": Decimal("200.00"),
        "commission_rate": Decimal("50.00"),
        "commission_type": CommissionType.PERCENTUAL,
        "commission_source": CommissionSource.REGRA,
        "reference_date": date(2025, 3, 10),
    }
    data.update(overrides)
    return CommissionItem(**data)


def make_period(tenant_id, professional_id, **overrides) -> CommissionPeriod:
    data = {
        "tenant_id": tenant_id,
        "professional_id": professional_id,
        "reference_month": "2025-03",
        "period_start": date(2025, 3, 1),
        "period_end": date(2025, 3, 31),
    }
    data.update(overrides)
    return CommissionPeriod(**data)


class TestCommissionRuleRepository:
    def test_unit_rule_inside_window_then_global(self, db_session, tenant_id):
        unit_id = str(uuid.uuid4())
        repo = CommissionRuleRepository(db_session)
        unit_rule = repo.create(
            CommissionRule(
                tenant_id=tenant_id,
                unit_id=unit_id,
                name="Unidade Centro",
                type=CommissionType.PERCENTUAL,
                default_rate=Decimal("45.00"),
                effective_from=date(2025, 1, 1),
                effective_to=date(2025, 6, 30),
            )
        )
        global_rule = repo.create(
            CommissionRule(
                tenant_id=tenant_id,
                name="Rede",
                type=CommissionType.PERCENTUAL,
                default_rate=Decimal("40.00"),
                effective_from=date(2024, 1, 1),
            )
        )
        service = CommissionRuleService(repo)

        assert service.resolve(tenant_id, unit_id, date(2025, 3, 15)).id == unit_rule.id
        assert service.resolve(tenant_id, unit_id, date(2025, 8, 1)).id == global_rule.id

    def test_lower_priority_number_wins(self, db_session, tenant_id):
        repo = CommissionRuleRepository(db_session)
        for name, priority in (("Sem prioridade", None), ("P2", 2), ("P1", 1)):
            repo.create(
                CommissionRule(
                    tenant_id=tenant_id,
                    name=name,
                    type=CommissionType.PERCENTUAL,
                    default_rate=Decimal("30.00"),
                    effective_from=date(2025, 1, 1),
                    priority=priority,
                )
            )

        assert repo.get_effective_global(tenant_id, date(2025, 2, 1)).name == "P1"

    def test_inactive_and_other_tenant_rules_ignored(self, db_session, tenant_id):
        repo = CommissionRuleRepository(db_session)
        inactive = repo.create(
            CommissionRule(
                tenant_id=tenant_id,
                name="Inativa",
                type=CommissionType.FIXO,
                default_rate=Decimal("10.00"),
                effective_from=date(2025, 1, 1),
            )
        )
        repo.set_active(tenant_id, inactive.id, False)
        repo.create(
            CommissionRule(
                tenant_id=str(uuid.uuid4()),
                name="Outro tenant",
                type=CommissionType.FIXO,
                default_rate=Decimal("10.00"),
                effective_from=date(2025, 1, 1),
            )
        )

        assert repo.get_effective(tenant_id, date(2025, 2, 1)) is None
        assert [r.name for r in repo.list(tenant_id)] == ["Inativa"]
        assert repo.list_active(tenant_id) == []


class TestAdvanceRepository:
    def test_guarded_transitions(self, db_session, tenant_id, professional_id, user_id):
        repo = AdvanceRepository(db_session)
        advance = repo.create(
            Advance(
                tenant_id=tenant_id,
                professional_id=professional_id,
                amount=Decimal("80.00"),
                request_date=date(2025, 3, 2),
            )
        )
        period_id = str(uuid.uuid4())

        # Deduct is illegal from PENDING
        assert repo.mark_deducted(tenant_id, advance.id, period_id, NOW) is False
        assert repo.get_by_id(tenant_id, advance.id).status == AdvanceStatus.PENDING

        assert repo.approve(tenant_id, advance.id, user_id, NOW) is True
        assert repo.approve(tenant_id, advance.id, user_id, NOW) is False
        assert repo.sum_approved(tenant_id, professional_id) == Decimal("80.00")

        assert repo.mark_deducted(tenant_id, advance.id, period_id, NOW) is True
        stored = repo.get_by_id(tenant_id, advance.id)
        assert stored.status == AdvanceStatus.DEDUCTED
        assert stored.deduction_period_id == period_id
        assert repo.cancel(tenant_id, advance.id, NOW) is False

    def test_tenant_isolation(self, db_session, tenant_id, professional_id):
        repo = AdvanceRepository(db_session)
        advance = repo.create(
            Advance(
                tenant_id=tenant_id,
                professional_id=professional_id,
                amount=Decimal("10.00"),
                request_date=date(2025, 3, 2),
            )
        )

        assert repo.get_by_id(str(uuid.uuid4()), advance.id) is None
        assert repo.delete(str(uuid.uuid4()), advance.id) is False

    def test_sub_cent_amount_is_never_stored(
        self, db_session, tenant_id, professional_id
    ):
        repo = AdvanceRepository(db_session)

        with pytest.raises(ValidationError):
            AdvanceService(repo).create_advance(
                AdvanceCreateRequest(
                    tenant_id=tenant_id, professional_id=professional_id, amount="0.004"
                )
            )

        assert repo.list(tenant_id) == []
        assert repo.get_approved_by_professional(tenant_id, professional_id) == []


class TestCommissionItemRepository:
    def test_assign_to_period_is_idempotent(self, db_session, tenant_id, professional_id):
        repo = CommissionItemRepository(db_session)
        inside = repo.create(make_item(tenant_id, professional_id))
        outside = repo.create(
            make_item(tenant_id, professional_id, reference_date=date(2025, 4, 2))
        )
        period_id = str(uuid.uuid4())

        first = repo.assign_to_period(
            tenant_id, professional_id, period_id, date(2025, 3, 1), date(2025, 3, 31), NOW
        )
        second = repo.assign_to_period(
            tenant_id, professional_id, period_id, date(2025, 3, 1), date(2025, 3, 31), NOW
        )

        assert (first, second) == (1, 0)
        processed = repo.get_by_id(tenant_id, inside.id)
        assert processed.status == CommissionItemStatus.PROCESSADO
        assert processed.period_id == period_id
        assert repo.get_by_id(tenant_id, outside.id).status == CommissionItemStatus.PENDENTE
        assert repo.delete(tenant_id, inside.id) is False

    def test_summaries(self, db_session, tenant_id, professional_id):
        repo = CommissionItemRepository(db_session)
        service_id = str(uuid.uuid4())
        repo.create_batch(
            [
                make_item(tenant_id, professional_id, service_id=service_id, service_name="Corte"),
                make_item(
                    tenant_id,
                    professional_id,
                    gross_value=Decimal("50.00"),
                    service_id=service_id,
                    service_name="Corte",
                ),
                make_item(tenant_id, professional_id, reference_date=date(2025, 5, 1)),
            ]
        )

        total = repo.sum_by_date_range(tenant_id, date(2025, 3, 1), date(2025, 3, 31))
        by_professional = repo.get_summary_by_professional(
            tenant_id, date(2025, 3, 1), date(2025, 3, 31)
        )
        by_service = repo.get_summary_by_service(
            tenant_id, date(2025, 3, 1), date(2025, 3, 31)
        )

        assert total == Decimal("125.00")
        assert len(by_professional) == 1
        assert by_professional[0].total_commission == Decimal("125.00")
        assert by_professional[0].items_count == 2
        assert by_service[0].service_name == "Corte"
        assert by_service[0].total_gross == Decimal("250.00")

    def test_stored_item_keeps_exact_commission_value(
        self, db_session, tenant_id, professional_id
    ):
        repo = CommissionItemRepository(db_session)
        service = CommissionItemService(repo)

        created = service.create_item(
            CommissionItemCreateRequest(
                tenant_id=tenant_id,
                professional_id=professional_id,
                gross_value="1000.00",
                commission_rate="33.34",
                commission_type=CommissionType.PERCENTUAL,
                reference_date="2025-03-10",
            )
        )
        stored = repo.get_by_id(tenant_id, created.id)

        assert stored.commission_rate == Decimal("33.34")
        assert stored.commission_value == Decimal("333.40")
        assert stored.commission_value == (
            stored.gross_value * stored.commission_rate / 100
        ).quantize(Decimal("0.01"))

    def test_sub_cent_rate_is_never_stored(self, db_session, tenant_id, professional_id):
        repo = CommissionItemRepository(db_session)

        with pytest.raises(ValidationError):
            CommissionItemService(repo).create_item(
                CommissionItemCreateRequest(
                    tenant_id=tenant_id,
                    professional_id=professional_id,
                    gross_value="1000.00",
                    commission_rate="33.335",
                    commission_type=CommissionType.PERCENTUAL,
                )
            )

        assert repo.list(tenant_id) == []

    def test_get_by_command_item_returns_newest_current_row(
        self, db_session, tenant_id, professional_id
    ):
        repo = CommissionItemRepository(db_session)
        command_item_id = str(uuid.uuid4())
        older, newer = (
            repo.create(
                make_item(tenant_id, professional_id, command_item_id=command_item_id)
            )
            for _ in range(2)
        )
        for item_id, created_at in (
            (older.id, datetime(2025, 3, 1, 9, 0)),
            (newer.id, datetime(2025, 3, 2, 9, 0)),
        ):
            db_session.query(CommissionItemModel).filter(
                CommissionItemModel.id == item_id
            ).update({"created_at": created_at}, synchronize_session=False)
        db_session.commit()

        assert repo.get_by_command_item(tenant_id, command_item_id).id == newer.id

        db_session.query(CommissionItemModel).filter(
            CommissionItemModel.id == newer.id
        ).update({"description": "Corte e barba"}, synchronize_session=False)
        db_session.commit()

        found = repo.get_by_command_item(tenant_id, command_item_id)
        assert found.description == "Corte e barba"


class TestCommissionPeriodRepository:
    def test_single_open_period_per_professional(
        self, db_session, tenant_id, professional_id
    ):
        repo = CommissionPeriodRepository(db_session)

        first = repo.get_or_create_open(make_period(tenant_id, professional_id))
        second = repo.get_or_create_open(
            make_period(tenant_id, professional_id, reference_month="2025-04")
        )

        assert second.id == first.id
        open_periods = repo.list(tenant_id, status=CommissionPeriodStatus.ABERTO)
        assert len(open_periods) == 1

    def test_unique_index_blocks_second_open_row(
        self, db_session, tenant_id, professional_id
    ):
        from sqlalchemy.exc import IntegrityError

        from commission_engine.db.base import CommissionPeriod as CommissionPeriodModel

        repo = CommissionPeriodRepository(db_session)
        repo.get_or_create_open(make_period(tenant_id, professional_id))

        db_session.add(
            CommissionPeriodModel(
                tenant_id=tenant_id,
                professional_id=professional_id,
                reference_month="2025-05",
                period_start=date(2025, 5, 1),
                period_end=date(2025, 5, 31),
                status=CommissionPeriodStatus.ABERTO,
            )
        )
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_close_is_conditional(self, db_session, tenant_id, professional_id, user_id):
        repo = CommissionPeriodRepository(db_session)
        period = repo.get_or_create_open(make_period(tenant_id, professional_id))

        assert repo.close(period, user_id, NOW) is True
        assert repo.close(period, user_id, NOW) is False
        stored = repo.get_by_id(tenant_id, period.id)
        assert stored.status == CommissionPeriodStatus.FECHADO
        assert stored.closed_by == user_id

        # A new open period is allowed once the previous one is closed
        reopened = repo.get_or_create_open(
            make_period(
                tenant_id,
                professional_id,
                reference_month="2025-04",
                period_start=date(2025, 4, 1),
                period_end=date(2025, 4, 30),
            )
        )
        assert reopened.id != period.id

        assert repo.delete(tenant_id, period.id) is False
        assert repo.mark_as_paid(tenant_id, period.id, user_id, NOW) is True
        assert repo.mark_as_paid(tenant_id, period.id, user_id, NOW) is False

    def test_summary_counts_linked_and_pending_in_range(
        self, db_session, tenant_id, professional_id
    ):
        period_repo = CommissionPeriodRepository(db_session)
        item_repo = CommissionItemRepository(db_session)
        period = period_repo.get_or_create_open(make_period(tenant_id, professional_id))
        item_repo.create(make_item(tenant_id, professional_id))
        item_repo.create(
            make_item(tenant_id, professional_id, reference_date=date(2025, 4, 5))
        )
        item_repo.create(make_item(tenant_id, str(uuid.uuid4())))

        summary = period_repo.get_summary(tenant_id, period.id)

        assert summary.items_count == 1
        assert summary.total_gross == Decimal("200.00")
        assert summary.total_commission == Decimal("100.00")


class TestCollaboratorAdapters:
    def test_payable_emission_is_idempotent(self, db_session, tenant_id):
        repo = ContaPagarRepository(db_session)
        payable = Payable(
            tenant_id=tenant_id,
            description="Comissão 2025-03 - Ana",
            category="COMISSAO",
            supplier="Ana",
            amount=Decimal("20.00"),
            due_date=date(2025, 4, 8),
            reference_key="commission-period:abc",
        )

        first = repo.create(payable)
        second = repo.create(payable)

        assert first.id is not None
        assert second.id == first.id
        assert second.amount == Decimal("20.00")

    def test_professional_lookup(self, db_session, tenant_id):
        professional = Profissional(
            tenant_id=tenant_id,
            nome="Ana",
            comissao=Decimal("30.00"),
            tipo_comissao=CommissionType.PERCENTUAL,
        )
        db_session.add(professional)
        db_session.commit()
        repo = ProfessionalRepository(db_session)

        found = repo.find_by_id(tenant_id, professional.id)

        assert found.name == "Ana"
        assert found.commission_rate == Decimal("30.00")
        assert repo.find_by_id(str(uuid.uuid4()), professional.id) is None

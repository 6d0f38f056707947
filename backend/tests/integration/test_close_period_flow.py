"""
End-to-end period close against SQLite with the real repositories.

Scenario: one PENDENTE item of 200.00 at 50% and one approved advance of
80.00. Closing the open period nets 100.00 - 80.00 into a 20.00 payable due
seven days after the close.
"""

import uuid
from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest

from commission_engine.core.exceptions import PeriodCannotClose, ValidationError
from commission_engine.db.base import Profissional
from commission_engine.db.transaction import (
    NullTransactionManager,
    SQLAlchemyTransactionManager,
)
from commission_engine.domain.entities import (
    AdvanceStatus,
    CommissionItemStatus,
    CommissionPeriodStatus,
)
from commission_engine.repositories.advance_repo import AdvanceRepository
from commission_engine.repositories.commission_item_repo import CommissionItemRepository
from commission_engine.repositories.commission_period_repo import (
    CommissionPeriodRepository,
)
from commission_engine.repositories.conta_pagar_repo import ContaPagarRepository
from commission_engine.repositories.professional_repo import ProfessionalRepository
from commission_engine.schemas.dtos import (
    AdvanceCreateRequest,
    CommissionItemCreateRequest,
    OpenPeriodRequest,
)
from commission_engine.services.advance_service import AdvanceService
from commission_engine.services.commission_item_service import CommissionItemService
from commission_engine.services.commission_period_service import (
    CommissionPeriodService,
)


@pytest.fixture
def professional(db_session, tenant_id):
    row = Profissional(tenant_id=tenant_id, nome="Carlos Barbeiro")
    db_session.add(row)
    db_session.commit()
    return row


@pytest.fixture
def services(db_session):
    advance_repo = AdvanceRepository(db_session)
    item_repo = CommissionItemRepository(db_session)
    period_service = CommissionPeriodService(
        CommissionPeriodRepository(db_session),
        advance_repo,
        item_repo,
        ContaPagarRepository(db_session),
        ProfessionalRepository(db_session),
        SQLAlchemyTransactionManager(db_session),
    )
    return {
        "advances": AdvanceService(advance_repo),
        "items": CommissionItemService(item_repo),
        "periods": period_service,
    }


@pytest.fixture
def scenario(services, tenant_id, professional, user_id):
    item = services["items"].create_item(
        CommissionItemCreateRequest(
            tenant_id=tenant_id,
            professional_id=professional.id,
            gross_value="200.00",
            commission_rate="50",
            commission_type="PERCENTUAL",
            reference_date="2025-03-12",
        )
    )
    advance = services["advances"].create_advance(
        AdvanceCreateRequest(
            tenant_id=tenant_id,
            professional_id=professional.id,
            amount="80.00",
            request_date="2025-03-05",
        )
    )
    services["advances"].approve(tenant_id, advance.id, user_id)
    period = services["periods"].get_or_create_open_period(
        OpenPeriodRequest(
            tenant_id=tenant_id,
            professional_id=professional.id,
            reference_month="2025-03",
        )
    )
    return {"item": item, "advance": advance, "period": period}


class TestClosePeriodFlow:
    def test_close_nets_item_against_advance(
        self, services, scenario, tenant_id, user_id, db_session
    ):
        assert scenario["item"].commission_value == Decimal("100.00")

        result = services["periods"].close_period(
            tenant_id, scenario["period"].id, user_id
        )

        assert result.advances_deducted == 1
        assert result.total_advances_amount == Decimal("80.00")
        assert result.items_processed == 1
        assert result.warnings == []

        period = services["periods"].get_period(tenant_id, scenario["period"].id)
        assert period.status == CommissionPeriodStatus.FECHADO
        assert period.total_commission == Decimal("100.00")
        assert period.total_advances == Decimal("80.00")
        assert period.total_net == Decimal("20.00")
        assert period.items_count == 1
        assert period.closed_by == user_id
        assert period.conta_pagar_id == result.payable.id

        payable = result.payable
        assert payable.amount == Decimal("20.00")
        assert payable.description == "Comissão 2025-03 - Carlos Barbeiro"
        assert payable.due_date == result.period.closed_at.date() + timedelta(days=7)

        item = services["items"].get_item(tenant_id, scenario["item"].id)
        assert item.status == CommissionItemStatus.PROCESSADO
        assert item.period_id == period.id

        advance = services["advances"].get_advance(tenant_id, scenario["advance"].id)
        assert advance.status == AdvanceStatus.DEDUCTED
        assert advance.deduction_period_id == period.id

    def test_second_close_fails_without_changes(
        self, services, scenario, tenant_id, user_id
    ):
        periods = services["periods"]
        first = periods.close_period(tenant_id, scenario["period"].id, user_id)

        with pytest.raises(PeriodCannotClose):
            periods.close_period(tenant_id, scenario["period"].id, user_id)

        period = periods.get_period(tenant_id, scenario["period"].id)
        assert period.total_net == Decimal("20.00")
        assert period.conta_pagar_id == first.payable.id

    def test_failed_status_write_rolls_back_deductions(
        self, services, scenario, tenant_id, user_id
    ):
        with patch.object(CommissionPeriodRepository, "close", return_value=False):
            with pytest.raises(PeriodCannotClose):
                services["periods"].close_period(
                    tenant_id, scenario["period"].id, user_id
                )

        advance = services["advances"].get_advance(tenant_id, scenario["advance"].id)
        assert advance.status == AdvanceStatus.APPROVED
        assert advance.deduction_period_id is None
        period = services["periods"].get_period(tenant_id, scenario["period"].id)
        assert period.status == CommissionPeriodStatus.ABERTO
        item = services["items"].get_item(tenant_id, scenario["item"].id)
        assert item.status == CommissionItemStatus.PENDENTE

    def test_new_period_opens_after_close(self, services, scenario, tenant_id, user_id):
        periods = services["periods"]
        periods.close_period(tenant_id, scenario["period"].id, user_id)

        next_period = periods.get_or_create_open_period(
            OpenPeriodRequest(
                tenant_id=tenant_id,
                professional_id=scenario["period"].professional_id,
                reference_month="2025-04",
            )
        )

        assert next_period.id != scenario["period"].id
        assert next_period.period_start == date(2025, 4, 1)

    def test_close_without_shared_transaction(
        self, db_session, services, scenario, tenant_id, user_id
    ):
        periods = CommissionPeriodService(
            CommissionPeriodRepository(db_session),
            AdvanceRepository(db_session),
            CommissionItemRepository(db_session),
            ContaPagarRepository(db_session),
            ProfessionalRepository(db_session),
            NullTransactionManager(),
        )

        result = periods.close_period(tenant_id, scenario["period"].id, user_id)

        assert result.period.total_net == Decimal("20.00")
        assert result.payable.amount == Decimal("20.00")

    def test_payable_not_emitted_when_advances_exceed_commission(
        self, services, scenario, tenant_id, professional, user_id
    ):
        extra = services["advances"].create_advance(
            AdvanceCreateRequest(
                tenant_id=tenant_id,
                professional_id=professional.id,
                amount="50.00",
            )
        )
        services["advances"].approve(tenant_id, extra.id, user_id)

        result = services["periods"].close_period(
            tenant_id, scenario["period"].id, user_id
        )

        assert result.advances_deducted == 2
        assert result.period.total_net == Decimal("-30.00")
        assert result.payable is None
        assert result.period.conta_pagar_id is None

    def test_reconcile_emits_payable_after_failed_emission(
        self, services, scenario, tenant_id, user_id
    ):
        periods = services["periods"]
        with patch.object(
            ContaPagarRepository, "create", side_effect=ConnectionError("financeiro offline")
        ):
            result = periods.close_period(tenant_id, scenario["period"].id, user_id)

        assert result.payable is None
        assert "payable_not_emitted" in result.warnings
        period = periods.get_period(tenant_id, scenario["period"].id)
        assert period.status == CommissionPeriodStatus.FECHADO
        assert period.conta_pagar_id is None

        reconciled = periods.reconcile_closed_period(tenant_id, period.id)

        assert reconciled.warnings == []
        assert reconciled.payable.amount == Decimal("20.00")
        assert reconciled.payable.due_date == result.period.closed_at.date() + timedelta(
            days=7
        )
        period = periods.get_period(tenant_id, period.id)
        assert period.conta_pagar_id == reconciled.payable.id

        again = periods.reconcile_closed_period(tenant_id, period.id)
        assert again.payable is None
        assert periods.get_period(tenant_id, period.id).conta_pagar_id == (
            reconciled.payable.id
        )


def test_malformed_period_id_is_rejected(services):
    with pytest.raises(ValidationError):
        services["periods"].close_period(str(uuid.uuid4()), "42")

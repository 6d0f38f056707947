"""
Unit tests for CommissionItemService.

Covers commission value derivation, batch validation, sale-line creation
through the rule hierarchy and idempotent cancellation by command line.
"""

import uuid
from datetime import date
from decimal import Decimal

import pytest

from commission_engine.core.exceptions import (
    CommissionItemCannotDelete,
    CommissionItemCannotProcess,
    CommissionItemCannotUpdate,
    ValidationError,
)
from commission_engine.domain.entities import (
    CalculationBase,
    CommissionItem,
    CommissionItemStatus,
    CommissionRule,
    CommissionSource,
    CommissionType,
)
from commission_engine.schemas.dtos import (
    CommissionItemCreateRequest,
    CommissionItemUpdateRequest,
    SaleCommissionRequest,
)
from commission_engine.services.commission_item_service import CommissionItemService
from commission_engine.services.commission_rule_service import CommissionRuleService
from tests.factories.repository_factories import (
    CollaboratorFactory,
    CommissionItemRepositoryFactory,
    CommissionRuleRepositoryFactory,
)

TENANT = str(uuid.uuid4())
PROFESSIONAL = str(uuid.uuid4())


def item_request(**overrides) -> CommissionItemCreateRequest:
    data = {
        "tenant_id": TENANT,
        "professional_id": PROFESSIONAL,
        "gross_value": "200.00",
        "commission_rate": "50",
        "commission_type": "PERCENTUAL",
        "reference_date": "2025-03-10",
    }
    data.update(overrides)
    return CommissionItemCreateRequest.from_dict(data)


def make_item(**overrides) -> CommissionItem:
    data = {
        "tenant_id": TENANT,
        "professional_id": PROFESSIONAL,
        "gross_value": Decimal("200.00"),
        "commission_rate": Decimal("50"),
        "commission_type": CommissionType.PERCENTUAL,
        "commission_source": CommissionSource.MANUAL,
        "reference_date": date(2025, 3, 10),
    }
    data.update(overrides)
    return CommissionItem(**data)


@pytest.fixture
def item_repo():
    return CommissionItemRepositoryFactory.create_mock_full()


@pytest.fixture
def rule_repo():
    return CommissionRuleRepositoryFactory.create_mock_full()


@pytest.fixture
def directory():
    return CollaboratorFactory.create_professional_directory()


@pytest.fixture
def service(item_repo, rule_repo, directory):
    rule_service = CommissionRuleService(rule_repo, item_repo, directory)
    return CommissionItemService(item_repo, rule_service)


class TestCommissionValue:
    @pytest.mark.parametrize(
        "gross, rate, expected",
        [
            ("200.00", "50", "100.00"),
            ("33.33", "33.33", "11.11"),
            ("0.05", "50", "0.03"),
            ("1234.56", "12.5", "154.32"),
        ],
    )
    def test_percentual_is_exact_to_cents(self, service, gross, rate, expected):
        item = service.create_item(item_request(gross_value=gross, commission_rate=rate))

        assert item.commission_value == Decimal(expected)

    def test_fixed_commission_uses_rate(self, service):
        item = service.create_item(
            item_request(commission_type="FIXO", commission_rate="15")
        )

        assert item.commission_value == Decimal("15.00")

    def test_new_item_is_pending(self, service):
        item = service.create_item(item_request())

        assert item.status == CommissionItemStatus.PENDENTE
        assert item.commission_source == CommissionSource.MANUAL

    def test_float_money_is_rejected(self, service, item_repo):
        with pytest.raises(ValidationError):
            service.create_item(item_request(gross_value=200.0))
        item_repo.create.assert_not_called()

    @pytest.mark.parametrize(
        "field_name, value",
        [("commission_rate", "33.335"), ("gross_value", "1000.005")],
    )
    def test_sub_cent_values_are_rejected(self, service, item_repo, field_name, value):
        with pytest.raises(ValidationError) as exc:
            service.create_item(item_request(**{field_name: value}))

        assert exc.value.field == field_name
        item_repo.create.assert_not_called()

    def test_trailing_zeros_are_accepted(self, service):
        item = service.create_item(
            item_request(gross_value="200.000", commission_rate="50.00")
        )

        assert item.gross_value == Decimal("200.00")
        assert item.commission_value == Decimal("100.00")


class TestBatch:
    def test_batch_validates_every_item_first(self, service, item_repo):
        requests = [
            item_request(),
            item_request(gross_value="-1"),
            item_request(professional_id="nope"),
        ]

        with pytest.raises(ValidationError) as exc:
            service.create_batch(requests)

        assert any(message.startswith("[1]") for message in exc.value.errors)
        assert any(message.startswith("[2]") for message in exc.value.errors)
        item_repo.create_batch.assert_not_called()

    def test_batch_persists_all(self, service, item_repo):
        created = service.create_batch([item_request(), item_request(gross_value="10")])

        assert [i.commission_value for i in created] == [
            Decimal("100.00"),
            Decimal("5.00"),
        ]
        item_repo.create_batch.assert_called_once()

    def test_empty_batch(self, service, item_repo):
        assert service.create_batch([]) == []
        item_repo.create_batch.assert_not_called()


class TestCreateFromSale:
    def test_service_rate_creates_servico_item(self, service):
        request = SaleCommissionRequest(
            tenant_id=TENANT,
            professional_id=PROFESSIONAL,
            gross_value="80.00",
            service_commission_rate="40",
            reference_date="2025-03-10",
        )

        item = service.create_from_sale(request)

        assert item.commission_source == CommissionSource.SERVICO
        assert item.commission_value == Decimal("32.00")

    def test_liquido_rule_uses_net_value(self, service, rule_repo):
        rule = CommissionRule(
            tenant_id=TENANT,
            name="Líquido",
            type=CommissionType.PERCENTUAL,
            default_rate=Decimal("50"),
            calculation_base=CalculationBase.LIQUIDO,
            effective_from=date(2025, 1, 1),
        )
        rule_repo.get_effective_global.return_value = rule
        request = SaleCommissionRequest(
            tenant_id=TENANT,
            professional_id=PROFESSIONAL,
            gross_value="100.00",
            net_value="90.00",
            reference_date="2025-03-10",
        )

        item = service.create_from_sale(request)

        assert item.commission_source == CommissionSource.REGRA
        assert item.rule_id == rule.id
        assert item.gross_value == Decimal("90.00")
        assert item.commission_value == Decimal("45.00")

    def test_no_rule_records_nothing(self, service, item_repo):
        request = SaleCommissionRequest(
            tenant_id=TENANT, professional_id=PROFESSIONAL, gross_value="100.00"
        )

        assert service.create_from_sale(request) is None
        item_repo.create.assert_not_called()


class TestItemTransitions:
    def test_delete_by_missing_command_item_is_success(self, service, item_repo):
        item_repo.get_by_command_item.return_value = None

        assert service.delete_by_command_item(TENANT, str(uuid.uuid4())) is False
        item_repo.delete.assert_not_called()

    def test_delete_by_command_item(self, service, item_repo):
        item = make_item(command_item_id=str(uuid.uuid4()))
        item_repo.get_by_command_item.return_value = item
        item_repo.delete.return_value = True

        assert service.delete_by_command_item(TENANT, item.command_item_id) is True
        item_repo.delete.assert_called_once_with(TENANT, item.id)

    def test_processed_item_cannot_be_deleted(self, service, item_repo):
        item_repo.get_by_id.return_value = make_item(
            status=CommissionItemStatus.PROCESSADO, period_id=str(uuid.uuid4())
        )

        with pytest.raises(CommissionItemCannotDelete):
            service.delete_item(TENANT, str(uuid.uuid4()))

    def test_processed_item_cannot_be_processed_again(self, service, item_repo):
        item_repo.get_by_id.return_value = make_item(
            status=CommissionItemStatus.PROCESSADO
        )

        with pytest.raises(CommissionItemCannotProcess):
            service.process(TENANT, str(uuid.uuid4()), str(uuid.uuid4()))

        item_repo.process.assert_not_called()

    def test_update_keeps_commission_value(self, service, item_repo):
        item = make_item()
        item_repo.get_by_id.return_value = item
        item_repo.update.return_value = True

        service.update_item(
            TENANT, item.id, CommissionItemUpdateRequest(description="Barba")
        )

        updated = item_repo.update.call_args.args[0]
        assert updated.description == "Barba"
        assert updated.commission_value == Decimal("100.00")

    def test_update_processed_item(self, service, item_repo):
        item_repo.get_by_id.return_value = make_item(
            status=CommissionItemStatus.PROCESSADO
        )

        with pytest.raises(CommissionItemCannotUpdate):
            service.update_item(
                TENANT, str(uuid.uuid4()), CommissionItemUpdateRequest(description="x")
            )

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from commission_engine.db.base import ContaPagar
from commission_engine.db.transaction import commit_or_flush, repository_operation
from commission_engine.domain.entities import Payable
from commission_engine.domain.interfaces import IPayableEmitter

logger = logging.getLogger(__name__)


class ContaPagarRepository(IPayableEmitter):
    """Writes payables into the accounts payable table (contas_pagar).

    `reference_key` is unique, so emitting the same payable twice returns the
    record created by the first call.
    """

    def __init__(self, db: Session):
        self.db = db

    @repository_operation("create_conta_pagar")
    def create(self, payable: Payable) -> Payable:
        if payable.reference_key:
            existing = self._by_reference(payable.reference_key)
            if existing:
                logger.info(
                    "Payable already emitted",
                    extra={
                        "context": {
                            "conta_pagar_id": existing.id,
                            "reference_key": payable.reference_key,
                        }
                    },
                )
                return self._to_domain(existing)

        conta = ContaPagar(
            tenant_id=payable.tenant_id,
            descricao=payable.description,
            categoria=payable.category,
            fornecedor=payable.supplier,
            valor=payable.amount,
            data_vencimento=payable.due_date,
            tipo=payable.cost_type,
            recorrente=payable.recurring,
            observacoes=payable.observations,
            reference_key=payable.reference_key,
        )
        try:
            with self.db.begin_nested():
                self.db.add(conta)
        except IntegrityError:
            existing = (
                self._by_reference(payable.reference_key)
                if payable.reference_key
                else None
            )
            if existing is None:
                raise
            return self._to_domain(existing)

        commit_or_flush(self.db)
        self.db.refresh(conta)
        logger.info(
            "Payable created",
            extra={
                "context": {
                    "conta_pagar_id": conta.id,
                    "valor": str(conta.valor),
                    "vencimento": conta.data_vencimento.isoformat(),
                }
            },
        )
        return self._to_domain(conta)

    def _by_reference(self, reference_key: str):
        return (
            self.db.query(ContaPagar)
            .filter(ContaPagar.reference_key == reference_key)
            .first()
        )

    @staticmethod
    def _to_domain(conta: ContaPagar) -> Payable:
        return Payable(
            id=conta.id,
            tenant_id=conta.tenant_id,
            description=conta.descricao,
            category=conta.categoria,
            supplier=conta.fornecedor,
            amount=conta.valor,
            due_date=conta.data_vencimento,
            cost_type=conta.tipo,
            recurring=conta.recorrente,
            observations=conta.observacoes,
            reference_key=conta.reference_key,
        )

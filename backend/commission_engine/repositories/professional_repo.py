from typing import Optional

from sqlalchemy.orm import Session

from commission_engine.db.base import Profissional
from commission_engine.db.transaction import repository_operation
from commission_engine.domain.entities import Professional
from commission_engine.domain.interfaces import IProfessionalDirectory


class ProfessionalRepository(IProfessionalDirectory):
    def __init__(self, db: Session):
        self.db = db

    @repository_operation("find_professional")
    def find_by_id(self, tenant_id: str, professional_id: str) -> Optional[Professional]:
        row = (
            self.db.query(Profissional)
            .filter(
                Profissional.tenant_id == tenant_id,
                Profissional.id == professional_id,
            )
            .first()
        )
        if not row:
            return None
        return Professional(
            id=row.id,
            name=row.nome,
            commission_rate=row.comissao,
            commission_type=row.tipo_comissao,
        )

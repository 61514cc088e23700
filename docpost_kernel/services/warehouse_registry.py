"""
WarehouseRegistry -- the enumerated list of recognized warehouses.

Responsibility:
    The only path by which a designator becomes a Warehouse endpoint.
    Routing resolves codes here before assigning destinations, and the
    StockMoveWriter re-resolves every Warehouse endpoint at posting time, so a
    movement can never post into a code that is unknown or deactivated.

Architecture position:
    Kernel > Services.  Flush-only.
"""

from sqlalchemy import select

from docpost_kernel.db.base import SYSTEM_ACTOR_ID, UUID
from docpost_kernel.domain.values import Warehouse as WarehouseEndpoint
from docpost_kernel.domain.values import normalize_warehouse_code
from docpost_kernel.exceptions import UnknownWarehouseError
from docpost_kernel.logging_config import get_logger
from docpost_kernel.models.inventory import Warehouse
from docpost_kernel.services.base import BaseService

logger = get_logger("services.warehouse_registry")


class WarehouseRegistry(BaseService[Warehouse]):
    """Lookup and maintenance of the warehouses table."""

    def get(self, code: str) -> Warehouse | None:
        normalized = normalize_warehouse_code(code)
        return self.session.execute(
            select(Warehouse).where(Warehouse.code == normalized)
        ).scalar_one_or_none()

    def register(
        self,
        code: str,
        name: str,
        *,
        active: bool = True,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> Warehouse:
        """
        Register a warehouse, or update name/active flag if it exists.

        Raises:
            InvalidWarehouseCodeError: code is not a short uppercase token.
        """
        normalized = normalize_warehouse_code(code)
        warehouse = self.get(normalized)
        if warehouse is None:
            warehouse = Warehouse(
                code=normalized,
                name=name,
                is_active=active,
                created_by_id=actor_id,
            )
            self.session.add(warehouse)
            logger.info("warehouse_registered", extra={"warehouse_code": normalized})
        else:
            warehouse.name = name
            warehouse.is_active = active
            warehouse.updated_by_id = actor_id
        self.session.flush()
        return warehouse

    def set_active(self, code: str, active: bool, *, actor_id: UUID = SYSTEM_ACTOR_ID) -> Warehouse:
        warehouse = self.get(code)
        if warehouse is None:
            raise UnknownWarehouseError(code)
        warehouse.is_active = active
        warehouse.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "warehouse_activation_changed",
            extra={"warehouse_code": warehouse.code, "is_active": active},
        )
        return warehouse

    def resolve(self, code: str) -> WarehouseEndpoint:
        """
        Turn a code into a Warehouse endpoint.

        Raises:
            InvalidWarehouseCodeError: code is not a short uppercase token.
            UnknownWarehouseError: code is not registered or is inactive.
        """
        warehouse = self.get(code)
        if warehouse is None or not warehouse.is_active:
            raise UnknownWarehouseError(normalize_warehouse_code(code))
        return WarehouseEndpoint(warehouse.code)

    def list_active(self) -> list[Warehouse]:
        return list(
            self.session.execute(
                select(Warehouse).where(Warehouse.is_active.is_(True)).order_by(Warehouse.code)
            ).scalars()
        )

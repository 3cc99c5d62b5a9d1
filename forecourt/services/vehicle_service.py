"""Vehicle store and status synchronizer used by the deal lifecycle."""

from __future__ import annotations

import logging
from typing import Any

from forecourt.core.exceptions import ConflictError, NotFoundError, ValidationError
from forecourt.models.base import utcnow
from forecourt.models.enums import VEHICLE_IN_STOCK, VEHICLE_LIVE, VEHICLE_SOLD, SalesStatus
from forecourt.models.vehicle import PrepTaskTemplate, Vehicle, VehicleTask
from forecourt.services.base_service import BaseService
from forecourt.utils.vrm import normalize_vrm

logger = logging.getLogger(__name__)

DEFAULT_PREP_TASKS = ("PDI", "Valet", "Oil Service Check", "Photos", "Advert")

_KEEP = object()


class VehicleService(BaseService):
    """Tenant-scoped vehicle lookups and status writes.

    Methods here only stage changes on the session; the calling service owns
    the transaction.
    """

    def find_by_id(self, tenant_id: int, vehicle_id: int) -> Vehicle | None:
        return (
            self.db.query(Vehicle)
            .filter(Vehicle.tenant_id == tenant_id, Vehicle.id == vehicle_id)
            .first()
        )

    def get(self, tenant_id: int, vehicle_id: int) -> Vehicle:
        vehicle = self.find_by_id(tenant_id, vehicle_id)
        if vehicle is None:
            raise NotFoundError(f"Vehicle {vehicle_id} not found.")
        return vehicle

    def find_by_vrm(self, tenant_id: int, vrm: str) -> Vehicle | None:
        return (
            self.db.query(Vehicle)
            .filter(Vehicle.tenant_id == tenant_id, Vehicle.vrm == normalize_vrm(vrm))
            .first()
        )

    def create(self, tenant_id: int, **fields: Any) -> Vehicle:
        vrm = normalize_vrm(fields.pop("vrm", None))
        if not vrm:
            raise ValidationError("Vehicle registration is required.")
        if self.find_by_vrm(tenant_id, vrm) is not None:
            raise ConflictError(f"A vehicle with registration {vrm} already exists.")
        vehicle = Vehicle(tenant_id=tenant_id, vrm=vrm, **fields)
        self.db.add(vehicle)
        self.db.flush()
        return vehicle

    def delete(self, vehicle: Vehicle) -> None:
        """Remove a vehicle together with its prep tasks and issues."""
        self.db.delete(vehicle)
        self.db.flush()

    def update_status(
        self,
        vehicle: Vehicle,
        sales_status: SalesStatus,
        status: str | None = None,
        sold_deal_id: Any = _KEEP,
        sold_at: Any = _KEEP,
    ) -> Vehicle:
        previous = vehicle.sales_status
        vehicle.sales_status = sales_status
        if status is not None:
            vehicle.status = status
        if sold_deal_id is not _KEEP:
            vehicle.sold_deal_id = sold_deal_id
        if sold_at is not _KEEP:
            vehicle.sold_at = sold_at
        logger.info(
            "vehicle.status.updated",
            extra={
                "event": "vehicle.status.updated",
                "tenant_id": vehicle.tenant_id,
                "vehicle_id": vehicle.id,
                "from_status": getattr(previous, "value", previous),
                "to_status": sales_status.value,
            },
        )
        return vehicle

    # Status synchronization for each deal transition

    def mark_in_deal(self, vehicle: Vehicle) -> Vehicle:
        return self.update_status(vehicle, SalesStatus.IN_DEAL)

    def mark_deposit_taken(self, vehicle: Vehicle) -> Vehicle:
        return self.update_status(vehicle, SalesStatus.IN_DEAL, status=VEHICLE_LIVE, sold_at=utcnow())

    def mark_sold(self, vehicle: Vehicle, deal_id: int) -> Vehicle:
        return self.update_status(vehicle, SalesStatus.COMPLETED, status=VEHICLE_SOLD, sold_deal_id=deal_id)

    def release(self, vehicle: Vehicle) -> Vehicle:
        """Return a vehicle to stock after a deal that never completed."""
        return self.update_status(vehicle, SalesStatus.AVAILABLE, status=VEHICLE_IN_STOCK, sold_at=None)

    def restore(self, vehicle: Vehicle) -> Vehicle:
        """Full restoration to sellable stock after a completed deal is cancelled."""
        return self.update_status(
            vehicle,
            SalesStatus.AVAILABLE,
            status=VEHICLE_IN_STOCK,
            sold_deal_id=None,
            sold_at=None,
        )

    # Preparation tasks

    def default_task_names(self, tenant_id: int) -> list[str]:
        templates = (
            self.db.query(PrepTaskTemplate)
            .filter(PrepTaskTemplate.tenant_id == tenant_id, PrepTaskTemplate.is_active.is_(True))
            .order_by(PrepTaskTemplate.position, PrepTaskTemplate.id)
            .all()
        )
        if templates:
            return [template.name for template in templates]
        return list(DEFAULT_PREP_TASKS)

    def seed_prep_tasks(self, vehicle: Vehicle, tenant_id: int) -> list[VehicleTask]:
        tasks = [
            VehicleTask(name=name, status="pending", source="auto")
            for name in self.default_task_names(tenant_id)
        ]
        vehicle.tasks.extend(tasks)
        return tasks

"""Service (work order) repository for database operations."""

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.sql import Select

from models import (
    AcquisitionType,
    Address,
    City,
    Client,
    ClientCopyMachine,
    Neighborhood,
    Service,
    Step,
)
from repositories.utils import log_slow_query


def _full_load_options() -> list:
    """Eager loads for a fully joined service.

    client -> address -> neighborhood -> city -> state, category,
    equipment -> catalog entry, and steps with responsible user and images.
    """
    return [
        selectinload(Service.client)
        .selectinload(Client.address)
        .selectinload(Address.neighborhood)
        .selectinload(Neighborhood.city)
        .selectinload(City.state),
        selectinload(Service.category),
        selectinload(Service.client_copy_machine).selectinload(
            ClientCopyMachine.catalog_copy_machine
        ),
        selectinload(Service.steps).selectinload(Step.responsable),
        selectinload(Service.steps).selectinload(Step.images),
    ]


class ServiceRepository:
    """Repository for Service database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, service_id: int) -> Service | None:
        """Fully joined service, refreshed from the database."""
        result = await self.db.execute(
            select(Service)
            .where(Service.id == service_id)
            .options(*_full_load_options())
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_with_steps(self, service_id: int) -> Service | None:
        """Service with steps and their images, for mutation paths."""
        result = await self.db.execute(
            select(Service)
            .where(Service.id == service_id)
            .options(selectinload(Service.steps).selectinload(Step.images))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    def _filtered(
        self,
        stmt: Select,
        *,
        category_id: int | None,
        client_id: int | None,
        client_copy_machine_id: int | None,
        city_id: int | None,
        acquisition_type: AcquisitionType | None,
    ) -> Select:
        """Apply the listing filters. Absent filters add no condition."""
        if category_id is not None:
            stmt = stmt.where(Service.category_id == category_id)
        if client_id is not None:
            stmt = stmt.where(Service.client_id == client_id)
        if client_copy_machine_id is not None:
            stmt = stmt.where(Service.client_copy_machine_id == client_copy_machine_id)
        if city_id is not None:
            stmt = (
                stmt.join(Client, Service.client_id == Client.id)
                .join(Address, Client.address_id == Address.id)
                .join(Neighborhood, Address.neighborhood_id == Neighborhood.id)
                .where(Neighborhood.city_id == city_id)
            )
        if acquisition_type is not None:
            stmt = stmt.join(
                ClientCopyMachine,
                Service.client_copy_machine_id == ClientCopyMachine.id,
            ).where(ClientCopyMachine.acquisition_type == acquisition_type)
        return stmt

    @log_slow_query("list_services")
    async def list_filtered(
        self,
        *,
        offset: int,
        limit: int,
        category_id: int | None = None,
        client_id: int | None = None,
        client_copy_machine_id: int | None = None,
        city_id: int | None = None,
        acquisition_type: AcquisitionType | None = None,
    ) -> tuple[list[Service], int]:
        """Page of fully joined services (newest first) and the filtered total."""
        filters = {
            "category_id": category_id,
            "client_id": client_id,
            "client_copy_machine_id": client_copy_machine_id,
            "city_id": city_id,
            "acquisition_type": acquisition_type,
        }

        count_stmt = self._filtered(select(func.count(Service.id)), **filters)
        total = (await self.db.execute(count_stmt)).scalar_one() or 0

        page_stmt = (
            self._filtered(select(Service), **filters)
            .options(*_full_load_options())
            .order_by(Service.created_at.desc(), Service.id.desc())
            .offset(offset)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(page_stmt)
        return list(result.scalars().all()), total

    async def create(self, **fields: Any) -> Service:
        service = Service(**fields)
        self.db.add(service)
        await self.db.flush()
        return service

    async def delete(self, service: Service) -> None:
        """Delete a service. Loaded steps and images are deleted first by the ORM."""
        await self.db.delete(service)
        await self.db.flush()

    async def count_by_category(self, category_id: int) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(Service)
            .where(Service.category_id == category_id)
        )
        return result.scalar_one() or 0

    async def get_plain(self, service_id: int) -> Service | None:
        """Service row without relationships (status derivation)."""
        return await self.db.get(Service, service_id)

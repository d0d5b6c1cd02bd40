"""Client and equipment lookups used by the service module.

Client CRUD lives elsewhere; this module only answers existence checks and
the aggregate counts the dashboard needs.
"""

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from models import Client, ClientCopyMachine


class ClientRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def exists(self, client_id: int) -> bool:
        result = await self.db.execute(select(Client.id).where(Client.id == client_id))
        return result.scalar_one_or_none() is not None

    async def count_all(self) -> int:
        result = await self.db.execute(select(func.count()).select_from(Client))
        return result.scalar_one() or 0

    async def count_created_since(self, since: datetime) -> int:
        result = await self.db.execute(
            select(func.count()).select_from(Client).where(Client.created_at >= since)
        )
        return result.scalar_one() or 0


class CopyMachineRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def exists(self, client_copy_machine_id: int) -> bool:
        result = await self.db.execute(
            select(ClientCopyMachine.id).where(
                ClientCopyMachine.id == client_copy_machine_id
            )
        )
        return result.scalar_one_or_none() is not None

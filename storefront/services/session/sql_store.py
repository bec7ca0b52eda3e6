"""SQLAlchemy backed client store."""
from typing import Iterable, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.db.models import ClientStoreEntry
from storefront.services.session.store import TokenStore


class SqlTokenStore(TokenStore):
    """Store scoped to one browser session id."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], session_id: str):
        self.session_factory = session_factory
        self.session_id = session_id

    async def _get_entry(self, db: AsyncSession, key: str) -> Optional[ClientStoreEntry]:
        result = await db.execute(
            select(ClientStoreEntry).where(
                ClientStoreEntry.session_id == self.session_id,
                ClientStoreEntry.key == key,
            )
        )
        return result.scalar_one_or_none()

    async def get(self, key: str) -> Optional[str]:
        async with self.session_factory() as db:
            entry = await self._get_entry(db, key)
            return entry.value if entry else None

    async def set(self, key: str, value: str) -> None:
        async with self.session_factory() as db:
            entry = await self._get_entry(db, key)
            if entry:
                entry.value = value
            else:
                db.add(ClientStoreEntry(session_id=self.session_id, key=key, value=value))
            await db.commit()

    async def delete(self, key: str) -> None:
        await self.clear([key])

    async def clear(self, keys: Iterable[str]) -> None:
        async with self.session_factory() as db:
            await db.execute(
                delete(ClientStoreEntry).where(
                    ClientStoreEntry.session_id == self.session_id,
                    ClientStoreEntry.key.in_(list(keys)),
                )
            )
            await db.commit()

from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops.v1.integrations.quickbooks.models import QboEntityMap


async def find_by_remote_id(
    session: AsyncSession, entity_type: str, remote_id: str
) -> QboEntityMap | None:
    result = await session.execute(
        select(QboEntityMap).where(
            and_(
                QboEntityMap.entity_type == entity_type,
                QboEntityMap.remote_id == remote_id,
            )
        )
    )
    return result.scalar_one_or_none()


async def find_by_local_id(
    session: AsyncSession, entity_type: str, local_id: UUID
) -> QboEntityMap | None:
    result = await session.execute(
        select(QboEntityMap).where(
            and_(
                QboEntityMap.entity_type == entity_type,
                QboEntityMap.local_id == local_id,
            )
        )
    )
    return result.scalar_one_or_none()


async def upsert_mapping(
    session: AsyncSession,
    *,
    entity_type: str,
    local_table: str,
    local_id: UUID,
    remote_id: str,
    sync_token: str | None,
    synced_at: datetime,
) -> QboEntityMap:
    """
    Record that ``local_id`` and ``remote_id`` are the same entity.

    An existing mapping for either side is updated in place. Flushes but
    does not commit; the caller owns the transaction.
    """
    mapping = await find_by_remote_id(session, entity_type, remote_id)
    if mapping is None:
        mapping = await find_by_local_id(session, entity_type, local_id)

    if mapping is None:
        mapping = QboEntityMap(
            entity_type=entity_type,
            local_table=local_table,
            local_id=local_id,
            remote_id=remote_id,
        )
        session.add(mapping)

    mapping.local_table = local_table
    mapping.local_id = local_id
    mapping.remote_id = remote_id
    mapping.remote_sync_token = sync_token
    mapping.last_synced_at = synced_at
    await session.flush()
    return mapping

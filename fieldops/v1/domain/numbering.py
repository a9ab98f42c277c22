"""
Document number allocation for locally created customers and projects.
"""

from sqlalchemy import and_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops.v1.domain.models import NumberSequence

DEFAULT_PREFIXES = {"customer": "C-", "project": "P-"}
MAX_ALLOCATION_ATTEMPTS = 10


async def allocate_number(session: AsyncSession, kind: str) -> str:
    """
    Take the next number for ``kind`` (e.g. ``C-00042``).

    The counter is advanced with a conditional update on its previous value,
    so concurrent allocators never hand out the same number. The caller owns
    the transaction.
    """
    for _ in range(MAX_ALLOCATION_ATTEMPTS):
        sequence = (
            await session.execute(
                select(NumberSequence)
                .where(NumberSequence.kind == kind)
                .execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()

        if sequence is None:
            try:
                async with session.begin_nested():
                    session.add(
                        NumberSequence(
                            kind=kind,
                            prefix=DEFAULT_PREFIXES.get(kind, f"{kind[:1].upper()}-"),
                            next_value=1,
                        )
                    )
            except IntegrityError:
                pass  # created concurrently, read it again
            continue

        current = sequence.next_value
        result = await session.execute(
            update(NumberSequence)
            .where(
                and_(
                    NumberSequence.id == sequence.id,
                    NumberSequence.next_value == current,
                )
            )
            .values(next_value=current + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return f"{sequence.prefix}{current:05d}"

    raise RuntimeError(f"Could not allocate a {kind} number")

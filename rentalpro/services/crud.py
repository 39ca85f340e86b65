from typing import Any, Dict, Iterable, Optional, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rentalpro.errors import NotFoundError

ModelT = TypeVar("ModelT")


async def get_or_raise(
    session: AsyncSession,
    model: Type[ModelT],
    record_id: int,
    message: Optional[str] = None,
    options: Iterable = (),
) -> ModelT:
    stmt = select(model).where(model.id == record_id)
    for option in options:
        stmt = stmt.options(option)
    result = await session.execute(stmt)
    record = result.scalar_one_or_none()
    if not record:
        raise NotFoundError(message)
    return record


def apply_changes(record: Any, changes: Dict[str, Any], allowed: Iterable[str]) -> Dict[str, Any]:
    """Copy whitelisted keys onto the record. Returns what was actually applied."""
    allowed = set(allowed)
    applied = {}
    for key, value in changes.items():
        if key not in allowed:
            raise ValueError(f"Field '{key}' cannot be changed")
        setattr(record, key, value)
        applied[key] = value
    return applied


async def delete_record(session: AsyncSession, record: Any) -> None:
    await session.delete(record)
    await session.commit()

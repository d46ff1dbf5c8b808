"""Multi-statement write helpers shared by the services."""

from typing import Any

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession


async def set_default_flag(session: AsyncSession, model: type[Any], target: Any) -> None:
    """Make *target* the only row of *model* with ``is_default=True``.

    Clearing and setting run inside one SAVEPOINT, so a failure leaves the
    previous default untouched.
    """
    async with session.begin_nested():
        await session.execute(
            update(model).where(model.is_default.is_(True), model.id != target.id).values(is_default=False)
        )
        target.is_default = True
        await session.flush()

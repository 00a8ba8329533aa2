"""Request identity.

Authentication happens upstream; the gateway forwards the acting user and,
when the user belongs to one, their organization as headers.
"""

from collections.abc import AsyncIterator
from dataclasses import dataclass
from uuid import UUID

from fastapi import Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.db import async_session_factory


@dataclass
class RequestContext:
    user_id: UUID
    organization_id: UUID | None
    session: AsyncSession | None = None


async def get_request_context(
    x_user_id: UUID | None = Header(default=None),
    x_organization_id: UUID | None = Header(default=None),
) -> AsyncIterator[RequestContext]:
    """Resolve the acting user and open a session for the request."""
    if x_user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )

    if settings.store_backend == "memory":
        yield RequestContext(user_id=x_user_id, organization_id=x_organization_id)
        return

    async with async_session_factory() as session:
        yield RequestContext(
            user_id=x_user_id,
            organization_id=x_organization_id,
            session=session,
        )

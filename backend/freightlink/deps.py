"""FastAPI dependencies shared by the routers.

Dependencies:
  get_repository    → SqlRepository on the request-scoped session
  get_notifier      → the NotificationDispatcher built in the lifespan
  get_current_user_id → caller identity from the gateway's X-User-Id header
"""

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from freightlink.database import get_db
from freightlink.repository import SqlRepository
from freightlink.services.notifications import NotificationDispatcher


async def get_repository(db: AsyncSession = Depends(get_db)) -> SqlRepository:
    return SqlRepository(db)


def get_notifier(request: Request) -> NotificationDispatcher:
    notifier = getattr(request.app.state, "notifier", None)
    if notifier is None:
        raise RuntimeError("Notification dispatcher is not running (lifespan not started)")
    return notifier


async def get_current_user_id(
    x_user_id: str | None = Header(default=None),
) -> str:
    """Authentication happens upstream; we only need the caller's id."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    return x_user_id

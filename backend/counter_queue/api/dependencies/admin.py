from typing import Optional
import logging
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from counter_queue.core.security import decode_token
from counter_queue.db.database import get_db_session
from counter_queue.exceptions import UnauthorizedError
from counter_queue.models.admin import Admin
from counter_queue.repositories.admin import AdminRepository

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/v1/auth/login", auto_error=False)


async def get_current_admin(
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db_session),
) -> Admin:
    if not token:
        raise UnauthorizedError("Not authenticated")

    payload = decode_token(token)
    if payload is None:
        raise UnauthorizedError("Could not validate credentials")

    username: Optional[str] = payload.get("sub")
    if username is None:
        raise UnauthorizedError("Could not validate credentials")

    admin = await AdminRepository(db).get_by_username(username)
    if admin is None:
        logger.info(f"Rejected token for unknown admin {username}")
        raise UnauthorizedError("Could not validate credentials")
    return admin

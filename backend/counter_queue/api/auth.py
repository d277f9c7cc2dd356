import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from counter_queue.core.security import create_access_token, verify_password
from counter_queue.db.database import get_db_session
from counter_queue.exceptions import UnauthorizedError
from counter_queue.rate_limiter import limiter
from counter_queue.repositories.admin import AdminRepository
from counter_queue.schemas.auth import LoginRequest, TokenResponse
from counter_queue.schemas.response import ApiResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/login", response_model=ApiResponse, response_model_exclude_unset=True)
@limiter.limit("10/minute")
async def login(
    request: Request,
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_db_session),
):
    admin = await AdminRepository(db).get_by_username(credentials.username)
    if admin is None or not verify_password(credentials.password, admin.hashed_password):
        logger.info(f"Failed login attempt for {credentials.username}")
        raise UnauthorizedError("Incorrect username or password")

    access_token, expires_in = create_access_token(data={"sub": admin.username})
    logger.info(f"Admin {admin.username} logged in")
    token = TokenResponse(access_token=access_token, expires_in=expires_in)
    return ApiResponse(status=True, message="Login successful", data=token.model_dump())

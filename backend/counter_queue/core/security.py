from datetime import datetime, timedelta
from typing import Optional, Tuple
import uuid

from jose import JWTError, jwt
from passlib.context import CryptContext

from counter_queue.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# SECRET_KEY is validated in settings
SECRET_KEY = settings.SECRET_KEY
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = settings.ACCESS_TOKEN_EXPIRE_MINUTES

def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> Tuple[str, int]:
    """
    Create a JWT access token with a unique JTI.

    Returns:
        Tuple of (encoded_jwt, expires_in_seconds)
    """
    to_encode = data.copy()

    if expires_delta is None:
        expires_delta = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    now = datetime.utcnow()

    to_encode.update({
        "exp": now + expires_delta,
        "iat": now,
        "jti": str(uuid.uuid4()),
    })

    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt, int(expires_delta.total_seconds())


def decode_token(token: str) -> Optional[dict]:
    """
    Decode and validate a JWT token.

    Returns:
        Token payload if valid, None otherwise
    """
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None

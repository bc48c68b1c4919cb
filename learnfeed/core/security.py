from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt, JWTError

from learnfeed.core.config import SECRET_KEY as _CONFIGURED_SECRET
from learnfeed.core.log import get_logger

logger = get_logger("learnfeed.auth", "AUTH")

# ======================
# JWT
# ======================

SECRET_KEY = _CONFIGURED_SECRET
if not SECRET_KEY:
    SECRET_KEY = "dev-secret-key-CHANGE-IN-PRODUCTION-12345678901234567890"
    logger.warning("Using default SECRET_KEY for development. DO NOT USE IN PRODUCTION!")

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str):
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.info("Token expired")
        return None
    except JWTError as e:
        logger.info("JWT decode error: %s", type(e).__name__)
        return None

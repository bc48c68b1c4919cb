from contextlib import contextmanager

from fastapi import Request, Depends, HTTPException
from sqlalchemy.orm import Session

from learnfeed.db.session import get_db
from learnfeed.profiles.models import Profile
from learnfeed.core.security import decode_access_token
from learnfeed.core.log import get_logger

logger = get_logger("learnfeed.deps", "AUTH")


def _token_from(request: Request):
    token = request.cookies.get("access_token")
    if not token:
        token = request.headers.get("authorization")
    # Support both "Bearer <token>" and raw token values.
    if isinstance(token, str) and token.lower().startswith("bearer "):
        token = token[7:].strip()
    return token


def get_current_profile(
    request: Request,
    db: Session = Depends(get_db)
) -> Profile:
    token = _token_from(request)
    if not token:
        logger.info("reject reason=missing_token path=%s", request.url.path)
        raise HTTPException(status_code=401, detail="Not authenticated")

    payload = decode_access_token(token)
    if not payload:
        logger.info("reject reason=invalid_token path=%s", request.url.path)
        raise HTTPException(status_code=401, detail="Invalid token")

    subject = payload.get("sub")
    try:
        profile_id = int(subject)
    except (TypeError, ValueError):
        logger.info("reject reason=bad_subject path=%s", request.url.path)
        raise HTTPException(status_code=401, detail="Invalid token payload")

    profile = db.get(Profile, profile_id)
    if not profile:
        logger.info("reject reason=profile_not_found id=%s path=%s", profile_id, request.url.path)
        raise HTTPException(status_code=401, detail="User not found")

    return profile


def get_instructor(
    profile: Profile = Depends(get_current_profile)
) -> Profile:
    """Dependency to ensure the caller is an instructor or admin."""
    if profile.role not in ("instructor", "admin"):
        raise HTTPException(status_code=403, detail="Instructor access required")
    return profile


def can_view_student(viewer: Profile, student_id: int) -> bool:
    return viewer.id == student_id or viewer.role in ("instructor", "admin")


@contextmanager
def http_errors():
    """Map service exceptions onto HTTP status codes."""
    try:
        yield
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e).strip("'"))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

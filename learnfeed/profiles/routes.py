from typing import Optional

from fastapi import APIRouter, Depends, Form
from sqlalchemy.orm import Session

from learnfeed.core.deps import get_current_profile, http_errors
from learnfeed.core.security import create_access_token
from learnfeed.db.session import get_db
from learnfeed.profiles import service
from learnfeed.profiles.models import Profile

router = APIRouter(prefix="/profiles", tags=["profiles"])


def _profile_dict(p: Profile) -> dict:
    return {
        "id": p.id,
        "email": p.email,
        "full_name": p.full_name,
        "role": p.role,
        "current_track_id": p.current_track_id,
        "current_goal_id": p.current_goal_id,
        "goal_status": p.goal_status,
        "goal_progress": p.goal_progress,
        "total_revenue_earned": float(p.total_revenue_earned or 0),
        "current_mrr": float(p.current_mrr or 0),
    }


# =========================
# CREATE
# =========================
@router.post("")
def create_profile(
    email: str = Form(...),
    full_name: Optional[str] = Form(None),
    db: Session = Depends(get_db),
):
    """Provision a student profile and hand back a token for it."""
    with http_errors():
        profile = service.create_profile(db, email, full_name=full_name)
    token = create_access_token({"sub": str(profile.id)})
    return {"profile": _profile_dict(profile), "access_token": token, "token_type": "bearer"}


# =========================
# ME
# =========================
@router.get("/me")
def read_me(profile: Profile = Depends(get_current_profile)):
    return _profile_dict(profile)


@router.delete("/me")
def delete_me(
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
):
    """Delete the account and everything it owns, activity feed included."""
    user_id = profile.id
    with http_errors():
        service.delete_profile(db, user_id)
    return {"deleted": user_id}

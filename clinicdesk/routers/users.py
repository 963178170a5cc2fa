# clinicdesk/routers/users.py
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from .. import crud, models, schemas, security
from ..audit import audit_trail
from ..database import get_db

router = APIRouter(
    tags=["Users"],
    dependencies=[Depends(security.require_admin)],
    responses={404: {"description": "Not found"}},
)


@router.get("/users", response_model=List[schemas.UserResponse])
def read_all_users(
    skip: int = 0,
    limit: int = 100,
    role: Optional[models.UserRole] = None,
    db: Session = Depends(get_db),
):
    return crud.get_users(db, skip=skip, limit=limit, role=role)


@router.put("/users/{user_id}", response_model=schemas.UserResponse)
def update_existing_user(
    user_id: int,
    user_update: schemas.UserUpdate,
    db: Session = Depends(get_db),
    ctx: security.RequestContext = Depends(security.require_admin),
):
    """Assign a role, a clinic, or deactivate an account."""
    if user_id == ctx.user_id and (user_update.role not in (None, models.UserRole.admin) or user_update.is_active is False):
        raise HTTPException(status_code=400, detail="You cannot remove your own admin access.")
    try:
        updated_user = crud.update_user(db, user_id=user_id, user_update=user_update)
    except crud.CRUDError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    audit_trail.log_event(
        db, ctx.user, "UPDATE", "USER", resource_type="user", resource_id=user_id,
        details=f"Updated user: {updated_user.email}",
        new_values=user_update.model_dump(mode="json", exclude_unset=True),
    )
    return updated_user

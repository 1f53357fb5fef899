# backend/routes/users.py
from typing import List, Optional, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from database import get_db
from models.movement import MovementBatch
from models.users import User
from schemas.movement import MovementBatchResponse
from schemas.user import UserListItem, UserPage, UserResponse, UserUpdate
from services import ledger
from utils.audit import client_ip, write_log
from utils.hashing import get_password_hash
from utils.tokenJWT import role_required

router = APIRouter(prefix="/users", tags=["Users"])

admin_only = role_required("ADMIN")


# User profile together with the latest batches they registered
class UserDetail(UserResponse):
    movement_batches: List[MovementBatchResponse] = []


def _batch_count(db: Session, user_id: int) -> int:
    return db.query(func.count(MovementBatch.id)).filter(MovementBatch.user_id == user_id).scalar() or 0


# Retrieve a list of users with filtering, sorting, and pagination (Admin only)
@router.get("", response_model=UserPage)
def get_all_users(
    q: Optional[str] = Query(None, description="Search by e-mail or name"),
    role: Optional[str] = Query(None, description="Filter by role"),
    active: Optional[bool] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    sort_by: Literal["id", "email", "name", "role", "created_at"] = "created_at",
    order: Literal["asc", "desc"] = "desc",
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_only),
):
    query = db.query(User)

    # Filter by email or name
    if q:
        like = f"%{q.lower()}%"
        query = query.filter(User.email.ilike(like) | User.name.ilike(like))

    if role:
        query = query.filter(User.role.ilike(role))

    if active is not None:
        query = query.filter(User.active == active)

    # Apply sorting based on selected field and order
    sort_map = {
        "id": User.id,
        "email": User.email,
        "name": User.name,
        "role": User.role,
        "created_at": User.created_at,
    }
    col = sort_map.get(sort_by, User.id)
    query = query.order_by(col.asc() if order == "asc" else col.desc(), User.id.asc())

    # Apply pagination
    total = query.count()
    users = query.offset((page - 1) * page_size).limit(page_size).all()

    counts = dict(
        db.query(MovementBatch.user_id, func.count(MovementBatch.id))
        .filter(MovementBatch.user_id.in_([u.id for u in users]))
        .group_by(MovementBatch.user_id)
        .all()
    ) if users else {}

    items = []
    for u in users:
        item = UserListItem.model_validate(u)
        item.batch_count = counts.get(u.id, 0)
        items.append(item)

    return {"items": items, "total": total, "page": page, "page_size": page_size}


@router.get("/{user_id}", response_model=UserDetail)
def get_user(user_id: int, db: Session = Depends(get_db), current_user: User = Depends(admin_only)):
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    recent_ids = [
        bid for (bid,) in db.query(MovementBatch.id)
        .filter(MovementBatch.user_id == user_id)
        .order_by(MovementBatch.created_at.desc(), MovementBatch.id.desc())
        .limit(10)
    ]
    batches = [ledger.get_batch(db, bid) for bid in recent_ids]

    base = UserResponse.model_validate(user)
    return UserDetail(
        **base.model_dump(),
        movement_batches=[MovementBatchResponse.model_validate(b) for b in batches],
    )


# Update a user account (Admin only)
@router.put("/{user_id}", response_model=UserResponse)
def update_user(
    user_id: int,
    payload: UserUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_only),
):
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    data = payload.model_dump(exclude_unset=True, exclude_none=True)

    if "email" in data:
        email = data["email"].strip().lower()
        clash = db.query(User.id).filter(func.lower(User.email) == email, User.id != user_id).first()
        if clash:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")
        user.email = email
    if "password" in data:
        user.password_hash = get_password_hash(data["password"])
    if "name" in data:
        user.name = data["name"].strip()
    if "role" in data:
        user.role = data["role"]
    if "active" in data:
        user.active = data["active"]

    db.commit()
    db.refresh(user)
    out = UserResponse.model_validate(user)

    write_log(db, user_id=current_user.id, action="USER_UPDATE", resource="users", status="SUCCESS",
              ip=client_ip(request), meta={"id": user_id, "fields": sorted(k for k in data if k != "password")})
    return out


# Delete a user account (Admin only)
@router.delete("/{user_id}")
def delete_user(
    user_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_only),
):
    # Prevent self-deletion
    if user_id == current_user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot delete your own account")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    # Batches keep their creator; such accounts can only be deactivated
    if _batch_count(db, user_id) > 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User has registered movements; deactivate the account instead",
        )

    email = user.email
    db.delete(user)
    db.commit()

    write_log(db, user_id=current_user.id, action="USER_DELETE", resource="users", status="SUCCESS",
              ip=client_ip(request), meta={"id": user_id})
    return {"message": f"User {email} has been deleted"}

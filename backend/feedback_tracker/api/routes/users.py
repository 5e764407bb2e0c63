import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from feedback_tracker.core.auth import (
    CurrentUser,
    get_current_user,
    hash_password,
    issue_token,
    require_roles,
    verify_password,
)
from feedback_tracker.core.dependencies import commit_or_conflict, get_db
from feedback_tracker.models.tracker import User
from feedback_tracker.schemas.users import AuthResponse, UserListResponse, UserLogin, UserOut, UserRegister
from feedback_tracker.utils.rate_limit import enforce_login_rate_limit

logger = logging.getLogger(__name__)

router = APIRouter()


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def _user_to_out(user: User) -> UserOut:
    return UserOut(
        id=str(user.id),
        name=user.name,
        email=user.email,
        role=user.role,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def _auth_response(user: User) -> AuthResponse:
    token, expires_at = issue_token(user_id=str(user.id), role=user.role, email=user.email)
    return AuthResponse(**_user_to_out(user).model_dump(), token=token, expires_at=expires_at)


@router.post("/users", response_model=AuthResponse, status_code=201)
def register_user(payload: UserRegister, db: Session = Depends(get_db)):
    email = _normalize_email(payload.email)
    if db.execute(select(User.id).where(User.email == email)).first():
        raise HTTPException(400, "User with this email already exists")

    user = User(name=payload.name.strip(), email=email, password_hash=hash_password(payload.password), role="user")
    db.add(user)
    commit_or_conflict(db, "User with this email already exists")
    db.refresh(user)
    logger.info("Registered user %s", user.id)
    return _auth_response(user)


@router.post("/users/login", response_model=AuthResponse)
def login_user(
    payload: UserLogin,
    request: Request,
    db: Session = Depends(get_db),
):
    enforce_login_rate_limit(request)
    user = db.execute(select(User).where(User.email == _normalize_email(payload.email))).scalar_one_or_none()
    if user is None or not verify_password(payload.password, user.password_hash):
        logger.info("Failed login attempt")
        raise HTTPException(401, "Invalid email or password")
    return _auth_response(user)


@router.get("/users/profile", response_model=UserOut)
def get_profile(
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        key = uuid.UUID(current_user.id)
    except ValueError:
        raise HTTPException(404, "User not found") from None
    user = db.get(User, key)
    if user is None:
        raise HTTPException(404, "User not found")
    return _user_to_out(user)


@router.get("/users", response_model=UserListResponse)
def list_users(
    _: CurrentUser = Depends(require_roles("admin")),
    db: Session = Depends(get_db),
):
    users = db.execute(select(User).order_by(User.created_at.desc(), User.email)).scalars().all()
    return UserListResponse(items=[_user_to_out(user) for user in users])

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.core.logger import get_logger
from app.core.security import (
    create_access_token,
    get_current_user,
    hash_password,
    user_to_dict,
    verify_password,
)
from app.database import get_db
from app.models import User
from app.schemas.auth import LoginRequest, LoginResponse, SignUpRequest
from app.schemas.user import UserOut

logger = get_logger(__name__)

router = APIRouter()


def _token_response(user: User) -> LoginResponse:
    out = UserOut(**user_to_dict(user))
    token = create_access_token(out.id, {"username": out.username})
    return LoginResponse(access_token=token, user=out)


@router.post("/sign-up", response_model=LoginResponse, status_code=status.HTTP_201_CREATED)
async def sign_up(payload: SignUpRequest, db: Session = Depends(get_db)) -> LoginResponse:
    email = payload.email.strip().lower()
    username = payload.username.strip()
    existing = (
        db.query(User)
        .filter(or_(func.lower(User.email) == email, User.username == username))
        .first()
    )
    if existing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User already exists",
        )

    user = User(username=username, email=email, password_hash=hash_password(payload.password))
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Registered user %s", user.id)
    return _token_response(user)


@router.post("/sign-in", response_model=LoginResponse)
async def sign_in(payload: LoginRequest, db: Session = Depends(get_db)) -> LoginResponse:
    email = payload.email.strip().lower()
    user = db.query(User).filter(User.email == email).first()
    if user is None or not verify_password(payload.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        )
    return _token_response(user)


@router.post("/sign-out")
async def sign_out() -> dict:
    return {"success": True}


@router.get("/me", response_model=UserOut)
async def me(user: dict = Depends(get_current_user)) -> UserOut:
    return UserOut(**user)

# subtrack/api/auth_routes.py
import logging

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from subtrack import models
from subtrack.db import get_db
from subtrack.deps import clear_auth_cookies, get_current_user_row, set_auth_cookies
from subtrack.schemas import LoginPayload, MessageOut, RegisterPayload, UserOut
from subtrack.services import auth_service

log = logging.getLogger("subtrack.auth_routes")

router = APIRouter(prefix="/auth", tags=["auth"])


# ------------------------ REGISTER ------------------------
@router.post("/register", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterPayload, response: Response, db: Session = Depends(get_db)):
    user, pair = auth_service.register_user(db, payload.name, payload.email, payload.password)
    set_auth_cookies(response, pair)
    return user


# ------------------------ LOGIN ------------------------
@router.post("/login", response_model=UserOut)
def login(payload: LoginPayload, response: Response, db: Session = Depends(get_db)):
    user, pair = auth_service.login_user(db, payload.email, payload.password)
    set_auth_cookies(response, pair)
    return user


# ------------------------ LOGOUT ------------------------
@router.post("/logout", response_model=MessageOut)
def logout(response: Response):
    clear_auth_cookies(response)
    return MessageOut(ok=True)


# ------------------------ ME ------------------------
@router.get("/me", response_model=UserOut)
def me(user: models.User = Depends(get_current_user_row)):
    return user

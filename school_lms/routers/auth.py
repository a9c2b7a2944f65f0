"""Login, logout and student self-registration."""

from fastapi import APIRouter, Body, Depends, HTTPException, Request, status
from pydantic import BaseModel
from sqlmodel import Session, select

from school_lms.auth_utils import hash_password, verify_password
from school_lms.database import get_session
from school_lms.deps import require_login
from school_lms.models import User
from school_lms.utils import is_valid_email

router = APIRouter()


class LoginIn(BaseModel):
    email: str
    password: str


class RegisterIn(BaseModel):
    name: str
    email: str
    password: str


def user_to_dict(user: User) -> dict:
    return {"id": user.id, "name": user.name, "email": user.email, "role": user.role}


@router.post("/login")
def login(request: Request, payload: LoginIn = Body(...), session: Session = Depends(get_session)):
    email_clean = payload.email.strip().lower()
    user = session.exec(select(User).where(User.email == email_clean)).first()

    if not user or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Your account is inactive. Please contact an administrator.",
        )

    # Clear any existing session first to avoid conflicts
    request.session.clear()
    request.session["user_id"] = user.id
    return user_to_dict(user)


@router.post("/logout")
def logout(request: Request):
    request.session.clear()
    return {"status": "success"}


@router.get("/me")
def me(current_user: User = Depends(require_login)):
    return user_to_dict(current_user)


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(request: Request, payload: RegisterIn = Body(...), session: Session = Depends(get_session)):
    """Register a student account and log it in."""
    name = payload.name.strip()
    email_clean = payload.email.strip().lower()
    errors = {}
    if not name:
        errors["name"] = "Full name is required."
    if not is_valid_email(email_clean):
        errors["email"] = "Please enter a valid email address."
    if len(payload.password) < 8:
        errors["password"] = "Password must be at least 8 characters."
    if not errors.get("email") and session.exec(select(User).where(User.email == email_clean)).first():
        errors["email"] = "This email is already registered."
    if errors:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=errors)

    # Hash before the row is stored; the model never sees the plaintext
    user = User(
        name=name,
        email=email_clean,
        password_hash=hash_password(payload.password),
        role="student",
    )
    session.add(user)
    session.commit()
    session.refresh(user)

    request.session.clear()
    request.session["user_id"] = user.id
    return user_to_dict(user)

"""
Authentication API endpoints and role gate dependencies
"""
from datetime import datetime, timedelta
from typing import Optional

import bcrypt
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from jose import JWTError, jwt
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import get_settings
from backend.database import get_db, transaction
from backend.models.user import User, UserRole
from backend.schemas import Envelope, ok
from backend.utils.errors import DuplicateKey, Forbidden
from backend.utils.logger import get_logger

settings = get_settings()
logger = get_logger(__name__)

router = APIRouter()

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


class UserResponse(BaseModel):
    id: int
    username: str
    full_name: Optional[str]
    role: UserRole
    is_active: bool
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class UserCreate(BaseModel):
    username: str = Field(min_length=3)
    password: str = Field(min_length=6)
    full_name: Optional[str] = None
    role: UserRole = UserRole.VO
    is_active: bool = True


# --- Password & token helpers ---

def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not hashed_password:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        return False


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


# --- Dependencies ---

async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db)
) -> User:
    """Resolve the bearer token to an active user"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Token is not valid",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        username: Optional[str] = payload.get("sub")
        if username is None:
            raise credentials_exception
    except JWTError:
        raise credentials_exception

    result = await db.execute(select(User).where(User.username == username))
    user = result.scalar_one_or_none()
    if user is None:
        raise credentials_exception
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is inactive")
    return user


def require_roles(*roles: UserRole):
    """Dependency factory: allow only callers holding one of ``roles``"""
    allowed = set(roles)

    async def _checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            names = " or ".join(r.value.upper() for r in roles)
            raise Forbidden(f"Access denied. {names} privileges required.")
        return current_user

    return _checker


require_admin = require_roles(UserRole.ADMIN)
require_deo = require_roles(UserRole.DEO)
require_vo = require_roles(UserRole.VO)
require_officer = require_roles(UserRole.DEO, UserRole.VO)


# --- Endpoints ---

@router.post("/login")
async def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db)
):
    """Exchange username/password for a bearer token"""
    result = await db.execute(select(User).where(User.username == form_data.username))
    user = result.scalar_one_or_none()

    if not user or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is inactive")

    token = create_access_token(data={"sub": user.username, "role": user.role.value})
    logger.info(f"User {user.username} logged in")
    return {
        "success": True,
        "message": "Login successful",
        "access_token": token,
        "token_type": "bearer",
        "data": UserResponse.model_validate(user),
    }


@router.get("/me", response_model=Envelope[UserResponse], response_model_exclude_unset=True)
async def get_me(current_user: User = Depends(get_current_user)):
    """Current user profile"""
    return ok(UserResponse.model_validate(current_user))


@router.post(
    "/register",
    status_code=201,
    response_model=Envelope[UserResponse],
    response_model_exclude_unset=True,
)
async def register(
    data: UserCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Create a user account (admin only)"""
    async with transaction(db):
        result = await db.execute(select(User).where(User.username == data.username))
        if result.scalar_one_or_none():
            raise DuplicateKey("User already exists")

        user = User(
            username=data.username,
            full_name=data.full_name,
            hashed_password=get_password_hash(data.password),
            role=data.role,
            is_active=data.is_active,
        )
        db.add(user)
        await db.flush()

    logger.info(f"Admin {current_user.username} registered {user.role.value} user {user.username}")
    return ok(UserResponse.model_validate(user), "User registered successfully")

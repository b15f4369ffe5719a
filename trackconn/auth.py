"""Authentication routes and the current-user dependency."""

import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError
from fakeredis import FakeAsyncRedis
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from fastapi_limiter.depends import RateLimiter
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from . import crud, schemas
from .core import get_settings
from .database import get_db
from .models import User

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")
router = APIRouter(prefix="/auth", tags=["auth"])


@dataclass
class CachedUser:
    """Serializable representation of a user stored in cache."""

    id: int
    email: str
    name: str
    hashed_password: str | None = None

    @classmethod
    def from_model(cls, user: User) -> "CachedUser":
        """Create a cache entry from a User ORM model."""
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            hashed_password=getattr(user, "hashed_password", None),
        )

    def to_model(self) -> User:
        """
        Convert cached data back into a detached User model.

        Returns:
            User: SQLAlchemy User instance populated from cache.
        """
        return User(
            id=self.id,
            email=self.email,
            name=self.name,
            hashed_password=self.hashed_password or "",
        )

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: str) -> "CachedUser":
        data: dict[str, Any] = json.loads(raw)
        return cls(**data)


_cache_client: Any | None = None


async def get_cache_client():
    """
    Return the Redis client used for the user cache.

    An in-process fake Redis is used when the configured server cannot
    be reached.

    Returns:
        Redis | FakeAsyncRedis: Cache backend instance.
    """
    global _cache_client
    if _cache_client is not None:
        return _cache_client
    settings = get_settings()
    try:
        client = redis.from_url(
            settings.REDIS_URL, encoding="utf-8", decode_responses=True
        )
        await client.ping()
        _cache_client = client
    except (RedisError, OSError):
        logger.warning(
            "redis unavailable at %s, caching users in process", settings.REDIS_URL
        )
        _cache_client = FakeAsyncRedis(decode_responses=True)
    return _cache_client


async def cache_user(user: User, expire_minutes: int | None = None):
    """
    Store user data in cache to avoid a database hit per request.

    Args:
        user (User): User ORM model.
        expire_minutes (int | None): Cache expiration time.
    """
    client = await get_cache_client()
    expires = expire_minutes or get_settings().ACCESS_TOKEN_EXPIRE_MINUTES
    await client.set(
        f"user:{user.email}", CachedUser.from_model(user).to_json(), ex=expires * 60
    )


async def get_cached_user(email: str) -> User | None:
    """
    Retrieve user from cache if available.

    Args:
        email (str): User email.

    Returns:
        User | None: Cached user or None.
    """
    client = await get_cache_client()
    cached = await client.get(f"user:{email}")
    if cached:
        return CachedUser.from_json(cached).to_model()
    return None


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Compare a plain password with its hashed value."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Generate a password hash using the configured context."""
    return pwd_context.hash(password)


def create_access_token(
    data: dict, expires_delta: timedelta | None = None, scope: str = "access"
) -> str:
    """Create a signed JWT access token."""
    settings = get_settings()
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire, "scope": scope})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_refresh_token(data: dict) -> str:
    """Create a JWT refresh token with a longer lifetime."""
    settings = get_settings()
    return create_access_token(
        data,
        expires_delta=timedelta(minutes=settings.REFRESH_TOKEN_EXPIRE_MINUTES),
        scope="refresh",
    )


def decode_token(token: str) -> dict:
    """Decode and verify a JWT. Raises ``JWTError`` when invalid."""
    settings = get_settings()
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])


def issue_tokens(user: User) -> schemas.Token:
    """Access/refresh token pair for a user."""
    return schemas.Token(
        access_token=create_access_token({"sub": user.email}),
        refresh_token=create_refresh_token({"sub": user.email}),
    )


def authenticate_user(db: Session, email: str, password: str) -> User | None:
    """Return the user when the password matches, otherwise ``None``."""
    user = crud.get_user_by_email(db, email)
    if not user or not verify_password(password, user.hashed_password):
        return None
    return user


async def get_current_user(
    token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)
) -> User:
    """Dependency that returns the authenticated user from a JWT, with caching."""

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_token(token)
        email: str | None = payload.get("sub")
        scope = payload.get("scope", "access")
        if email is None or scope != "access":
            raise credentials_exception
        token_data = schemas.TokenData(sub=email, scope=scope)
    except JWTError:
        raise credentials_exception
    cached_user = await get_cached_user(token_data.sub)
    if cached_user:
        return cached_user
    user = await run_in_threadpool(crud.get_user_by_email, db, token_data.sub)
    if user is None:
        raise credentials_exception
    await cache_user(user)
    return user


@router.post(
    "/signup",
    response_model=schemas.UserOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(RateLimiter(times=5, seconds=60))],
)
def signup(user_in: schemas.UserCreate, db: Session = Depends(get_db)):
    """Register a new user."""

    hashed_password = get_password_hash(user_in.password)
    user = crud.create_user(db, user_in, hashed_password)
    logger.info("registered user %s", user.id)
    return user


@router.post("/login", response_model=schemas.Token)
async def login_for_access_token(
    form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)
):
    """Authenticate a user by email and password and return a token pair."""

    user = await run_in_threadpool(
        authenticate_user, db, form_data.username, form_data.password
    )
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials"
        )
    await cache_user(user)
    return issue_tokens(user)


@router.post("/refresh", response_model=schemas.Token)
async def refresh_tokens(payload: schemas.TokenRefresh, db: Session = Depends(get_db)):
    """Issue a new pair of tokens based on a refresh token."""

    try:
        token_data = decode_token(payload.refresh_token)
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token"
        )

    if token_data.get("scope") != "refresh":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token scope"
        )
    user = await run_in_threadpool(
        crud.get_user_by_email, db, token_data.get("sub") or ""
    )
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="User not found"
        )
    await cache_user(user)
    return issue_tokens(user)

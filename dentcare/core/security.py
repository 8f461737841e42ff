import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from dentcare.config import ACCESS_TOKEN_EXPIRE_MINUTES, ALGORITHM, SECRET_KEY
from dentcare.database import get_db
from dentcare.models.clinic import Clinic
from dentcare.models.user import User, UserRole

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


class ActorRole(str, enum.Enum):
    PATIENT = "PATIENT"
    CLINIC_STAFF = "CLINIC_STAFF"
    ADMIN = "ADMIN"


@dataclass(frozen=True)
class Actor:
    """Who is calling a core operation, resolved once from the token."""

    user_id: int
    role: ActorRole
    clinic_id: Optional[int] = None


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        raise credentials_exception
    email = payload.get("sub")
    if email is None:
        raise credentials_exception

    user = db.query(User).filter(User.email == email).first()
    if user is None:
        raise credentials_exception
    return user


async def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Inactive user")
    return current_user


def require_role(*roles: UserRole):
    """Dependency factory that only lets users with one of ``roles`` through."""

    async def checker(current_user: User = Depends(get_current_active_user)) -> User:
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"{' or '.join(r.value.replace('_', ' ').title() for r in roles)} access required"
            )
        return current_user

    return checker


async def get_current_clinic(
    current_user: User = Depends(require_role(UserRole.CLINIC_OWNER)),
    db: Session = Depends(get_db)
) -> Clinic:
    clinic = db.query(Clinic).filter(Clinic.owner_id == current_user.id).first()
    if not clinic:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User does not have a clinic"
        )
    return clinic


def actor_for(user: User, db: Session) -> Actor:
    if user.role == UserRole.ADMIN:
        return Actor(user_id=user.id, role=ActorRole.ADMIN)
    if user.role == UserRole.CLINIC_OWNER:
        clinic = db.query(Clinic).filter(Clinic.owner_id == user.id).first()
        return Actor(user_id=user.id, role=ActorRole.CLINIC_STAFF, clinic_id=clinic.id if clinic else None)
    return Actor(user_id=user.id, role=ActorRole.PATIENT)


async def get_current_actor(
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
) -> Actor:
    return actor_for(current_user, db)

from datetime import datetime, timedelta, timezone
from typing import Optional, Annotated
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from pydantic import ValidationError as PydanticValidationError

from timesheet_workflow.config import settings
from timesheet_workflow.constants.statuses import Role
from timesheet_workflow.schemas.auth import Actor

# Tokens are issued by the identity provider; tokenUrl only documents where
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)
    return encoded_jwt

def create_actor_token(actor: Actor, expires_delta: Optional[timedelta] = None):
    return create_access_token(
        {"sub": str(actor.id), "role": actor.role.value, "name": actor.display_name},
        expires_delta=expires_delta,
    )

def get_current_actor(token: Annotated[str, Depends(oauth2_scheme)]) -> Actor:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
        subject: str = payload.get("sub")
        role: str = payload.get("role")
        if subject is None or role is None:
            raise credentials_exception
        actor = Actor(id=int(subject), role=Role(role), display_name=payload.get("name") or "")
    except (JWTError, ValueError, PydanticValidationError):
        raise credentials_exception
    return actor

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel
from typing import Optional
import jwt
from datetime import datetime, timedelta, timezone
from formcraft.core.config import Settings, get_app_settings

class TokenData(BaseModel):
    sub: str

bearer = HTTPBearer()
optional_bearer = HTTPBearer(auto_error=False)

def create_token(user_id: str, settings: Settings, ttl_minutes: Optional[int] = None) -> str:
    now = datetime.now(timezone.utc)
    ttl = ttl_minutes if ttl_minutes is not None else settings.ACCESS_TOKEN_EXPIRE_MINUTES
    payload = {"sub": user_id, "iat": int(now.timestamp()), "exp": int((now + timedelta(minutes=ttl)).timestamp())}
    return jwt.encode(payload, settings.SECRET_KEY.get_secret_value(), algorithm=settings.ALGORITHM)

def decode_token(token: str, settings: Settings) -> TokenData:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY.get_secret_value(), algorithms=[settings.ALGORITHM])
        return TokenData(sub=payload["sub"])
    except (jwt.PyJWTError, KeyError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")

def get_current_user(creds: HTTPAuthorizationCredentials = Depends(bearer),
                     settings: Settings = Depends(get_app_settings)) -> TokenData:
    return decode_token(creds.credentials, settings)

def get_optional_user(creds: Optional[HTTPAuthorizationCredentials] = Depends(optional_bearer),
                      settings: Settings = Depends(get_app_settings)) -> Optional[TokenData]:
    """Public routes: anonymous callers are fine, a bad token is not."""
    if creds is None:
        return None
    return decode_token(creds.credentials, settings)

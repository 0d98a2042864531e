from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends, Header, HTTPException, Request

JWT_ALGO = "HS256"
TOKEN_TTL = timedelta(days=7)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=10)).decode()


def check_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        # Not a bcrypt hash, e.g. a user created by identity sync
        return False


def create_token(user_doc: dict, secret: str) -> str:
    payload = {
        "sub": str(user_doc["id"]),
        "email": user_doc["email"],
        "name": user_doc["name"],
        "role": user_doc.get("role", "customer"),
        "exp": datetime.now(timezone.utc) + TOKEN_TTL,
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGO)


def get_current_user(request: Request, authorization: Optional[str] = Header(None)) -> Optional[dict]:
    """Resolve the principal from a bearer token; ``None`` when absent or invalid."""
    if not authorization:
        return None
    try:
        scheme, token = authorization.split(" ")
    except ValueError:
        return None
    if scheme.lower() != "bearer":
        return None
    try:
        payload = jwt.decode(token, request.app.state.settings.jwt_secret, algorithms=[JWT_ALGO])
    except jwt.PyJWTError:
        return None
    return {
        "id": payload["sub"],
        "email": payload.get("email"),
        "name": payload.get("name"),
        "role": payload.get("role", "customer"),
    }


def require_user(user=Depends(get_current_user)) -> dict:
    if not user:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user


def require_admin(user=Depends(require_user)) -> dict:
    if user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Admin only")
    return user

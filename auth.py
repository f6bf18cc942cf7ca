"""
Users and bearer-token authentication.

Tokens are HS256 JWTs carrying ``{userId, email}`` and expire after
``Settings.jwt_expires_in`` seconds.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
import jwt
from fastapi import Depends, Header
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import to_str_id, utcnow
from errors import AuthError, ConflictError
from schemas import LoginIn, RegisterIn, TokenClaims
from settings import Settings, get_settings

logger = logging.getLogger("vlxd.auth")

ALGORITHM = "HS256"
BCRYPT_ROUNDS = 10


def _pw_bytes(password: str) -> bytes:
    # bcrypt only looks at the first 72 bytes
    return password.encode("utf-8")[:72]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_pw_bytes(password), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def check_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(_pw_bytes(password), hashed.encode("utf-8"))
    except ValueError:
        # malformed stored hash
        return False


def create_token(user_id: str, email: str, settings: Settings) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "userId": user_id,
        "email": email,
        "iat": now,
        "exp": now + timedelta(seconds=settings.jwt_expires_in),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=ALGORITHM)


def decode_token(token: str, settings: Settings) -> TokenClaims:
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthError("Token expired")
    except jwt.PyJWTError:
        raise AuthError("Invalid token")
    if not claims.get("userId") or not claims.get("email"):
        raise AuthError("Invalid token")
    return TokenClaims(user_id=claims["userId"], email=claims["email"])


def require_user(
    authorization: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
) -> TokenClaims:
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthError("Unauthorized")
    return decode_token(authorization[len("Bearer "):].strip(), settings)


# -----------------------------
# Users
# -----------------------------

def _public_user(doc: Dict[str, Any]) -> Dict[str, Any]:
    d = to_str_id(doc)
    return {"id": d["id"], "email": d["email"], "name": d["name"]}


def register_user(db: Database, payload: RegisterIn, settings: Settings) -> Dict[str, Any]:
    email = payload.email.lower()
    if db["user"].find_one({"email": email}):
        raise ConflictError("Email already registered")
    doc = {
        "email": email,
        "name": payload.name,
        "password": hash_password(payload.password),
        "created_at": utcnow(),
    }
    try:
        res = db["user"].insert_one(doc)
    except DuplicateKeyError:
        raise ConflictError("Email already registered")
    doc["_id"] = res.inserted_id
    logger.info("Registered user %s", email)
    user = _public_user(doc)
    return {"user": user, "token": create_token(user["id"], user["email"], settings)}


def authenticate(db: Database, payload: LoginIn, settings: Settings) -> Dict[str, Any]:
    doc = db["user"].find_one({"email": payload.email.lower()})
    if not doc or not check_password(payload.password, doc.get("password", "")):
        logger.info("Failed login for %s", payload.email)
        raise AuthError("Invalid credentials")
    user = _public_user(doc)
    return {"user": user, "token": create_token(user["id"], user["email"], settings)}

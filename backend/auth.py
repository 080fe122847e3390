"""Adviser credentials: bcrypt password hashes and HS256 access tokens."""
from passlib.context import CryptContext
from jose import JWTError, jwt
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict
import logging
import os

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

JWT_SECRET = os.getenv("JWT_SECRET", "your-secret-key-change-in-production")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRATION_HOURS = int(os.getenv("JWT_EXPIRATION_HOURS", "24"))

def hash_password(password: str) -> str:
    return pwd_context.hash(password)

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """False for a wrong password or a stored hash passlib cannot read."""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError as e:
        logger.warning(f"Unreadable password hash: {e}")
        return False

def create_access_token(claims: Dict, expires_delta: Optional[timedelta] = None) -> str:
    """Signed token carrying claims, valid for JWT_EXPIRATION_HOURS by default."""
    issued_at = datetime.now(timezone.utc)
    to_encode = dict(claims)
    to_encode["iat"] = issued_at
    to_encode["exp"] = issued_at + (expires_delta or timedelta(hours=JWT_EXPIRATION_HOURS))
    return jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALGORITHM)

def decode_access_token(token: str) -> Optional[Dict]:
    """Claims of a valid, unexpired token; None otherwise."""
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError:
        return None

def build_token_payload(user: Dict) -> Dict:
    """Claims carried in the access token for an adviser account."""
    return {
        "user_id": user["id"],
        "email": user.get("email"),
        "name": user.get("name"),
        "role": user.get("role", "ADVISER"),
    }

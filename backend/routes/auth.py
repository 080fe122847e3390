from fastapi import APIRouter, HTTPException, Request, status
from database import database
from models import LoginRequest, UpdateNameRequest, AuditAction, UserRole
from auth import verify_password, create_access_token, build_token_payload
from middleware import require_auth, get_client_ip
from utils.audit import create_audit_log
from utils.rate_limiter import rate_limiter
from datetime import datetime, timezone
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])
users_router = APIRouter(prefix="/api/users", tags=["users"])

LOGIN_MAX_ATTEMPTS = 5
LOGIN_WINDOW_MINUTES = 15

def _public_user(user: dict) -> dict:
    return {
        "id": user["id"],
        "email": user.get("email"),
        "name": user.get("name"),
        "role": user.get("role", UserRole.ADVISER.value),
    }

def _user_role(user: dict) -> UserRole:
    try:
        return UserRole(user.get("role") or UserRole.ADVISER.value)
    except ValueError:
        logger.warning(f"Unknown role {user.get('role')!r} on user {user.get('id')}")
        return UserRole.ADVISER

@router.post("/login")
async def login(request: Request, credentials: LoginRequest):
    """Adviser login. Rate limited per IP; a successful login clears the counter."""
    if not credentials.email or not credentials.password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email and password are required"
        )

    ip_address = get_client_ip(request)
    rate_key = f"login:{ip_address}"
    allowed, _ = await rate_limiter.check_rate_limit(rate_key, LOGIN_MAX_ATTEMPTS, LOGIN_WINDOW_MINUTES)
    if not allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many login attempts. Please try again later."
        )

    db = database.get_db()

    try:
        email = credentials.email.strip().lower()
        user = await db.users.find_one({"email": email}, {"_id": 0})

        if not user or not user.get("password_hash") or not user.get("is_active", True) \
                or not verify_password(credentials.password, user["password_hash"]):
            await create_audit_log(
                action=AuditAction.USER_LOGIN_FAILED,
                actor_id=user["id"] if user else None,
                metadata={"email": email, "reason": "invalid_credentials"},
                ip_address=ip_address
            )
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid email or password"
            )

        rate_limiter.reset(rate_key)

        await db.users.update_one(
            {"id": user["id"]},
            {"$set": {"last_login": datetime.now(timezone.utc).isoformat()}}
        )

        access_token = create_access_token(build_token_payload(user))

        await create_audit_log(
            action=AuditAction.USER_LOGIN,
            actor_id=user["id"],
            actor_role=_user_role(user),
            ip_address=ip_address
        )

        return {
            "success": True,
            "user": _public_user(user),
            "accessToken": access_token,
        }

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Login error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Login failed"
        )

@router.get("/me")
async def get_me(request: Request):
    """Current adviser profile."""
    user = await require_auth(request)
    db = database.get_db()

    try:
        record = await db.users.find_one({"id": user["user_id"]}, {"_id": 0, "password_hash": 0})
        if not record:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="User not found"
            )
        return {"user": _public_user(record)}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Get user error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load user"
        )

@users_router.patch("/update-name")
async def update_name(request: Request, data: UpdateNameRequest):
    """Change the adviser's display name."""
    user = await require_auth(request)

    if not isinstance(data.name, str) or not data.name.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Name is required and must be a non-empty string"
        )

    db = database.get_db()
    new_name = data.name.strip()

    try:
        before = await db.users.find_one({"id": user["user_id"]}, {"_id": 0, "password_hash": 0})
        if not before:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="User not found"
            )

        await db.users.update_one({"id": user["user_id"]}, {"$set": {"name": new_name}})

        await create_audit_log(
            action=AuditAction.USER_NAME_UPDATED,
            actor_id=user["user_id"],
            resource_type="user",
            resource_id=user["user_id"],
            before_state={"name": before.get("name")},
            after_state={"name": new_name}
        )

        return {
            "success": True,
            "user": {"id": before["id"], "name": new_name, "email": before.get("email")},
        }

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Update name error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update name"
        )

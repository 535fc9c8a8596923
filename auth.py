"""
Authentication routes and dependencies
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Header, Depends, Cookie
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from database import get_db
from crud.user import UserRepository
from crud.subscription import SubscriptionRepository
from auth_utils import create_jwt, decode_jwt, TOKEN_TTL_DAYS
from services.auth_service import AuthService
from utils.shared_utils import get_cached, invalidate_cached
from config.settings import IS_PRODUCTION, TIER_FREE, settings

logger = logging.getLogger(__name__)

# Create auth router
auth_router = APIRouter(prefix="/api/auth", tags=["auth"])

TOKEN_MAX_AGE = TOKEN_TTL_DAYS * 24 * 60 * 60


# Request models
class SendCodeRequest(BaseModel):
    phone_number: str


class RegisterRequest(BaseModel):
    phone_number: str
    name: str
    code: str


class LoginRequest(BaseModel):
    phone_number: str
    code: str


class LanguageRequest(BaseModel):
    language: str


def _user_payload(user) -> dict:
    return {
        "id": user.id,
        "phone_number": user.phone_number,
        "name": user.name,
        "is_verified": user.is_verified,
        "language_preference": user.language_preference,
        "created_at": user.created_at.isoformat() if user.created_at else None,
        "last_login_at": user.last_login_at.isoformat() if user.last_login_at else None,
    }


def _auth_response(user) -> JSONResponse:
    token = create_jwt(str(user.id))
    response = JSONResponse(
        content={
            "ok": True,
            "user_id": str(user.id),
            "user": _user_payload(user),
        }
    )
    response.set_cookie(
        key="auth_token",
        value=token,
        httponly=True,
        secure=True,
        samesite="Lax",
        max_age=TOKEN_MAX_AGE
    )
    return response


@auth_router.post("/send-code")
async def send_code(request: SendCodeRequest, db: AsyncSession = Depends(get_db)):
    """Issue a verification code for a phone number"""
    result = await AuthService(db).send_verification_code(request.phone_number)
    if result["is_error"]:
        status = 400 if result["error"] == "Invalid phone number" else 500
        raise HTTPException(status_code=status, detail=result["error"])

    content = {"ok": True, "expires_at": result["data"]["expires_at"]}
    # Local development without an SMS gateway opts in with EXPOSE_DEV_CODES
    if settings.expose_dev_codes and not IS_PRODUCTION:
        content["dev_code"] = result["data"]["code"]
    return content


@auth_router.post("/register")
async def register(request: RegisterRequest, db: AsyncSession = Depends(get_db)):
    """Create a new account after phone verification"""
    result = await AuthService(db).register_user(request.phone_number, request.name, request.code)
    if result["is_error"]:
        raise HTTPException(status_code=400, detail=result["error"])
    return _auth_response(result["data"])


@auth_router.post("/login")
async def login(request: LoginRequest, db: AsyncSession = Depends(get_db)):
    """Login with a verification code and get JWT token"""
    result = await AuthService(db).login_user(request.phone_number, request.code)
    if result["is_error"]:
        raise HTTPException(status_code=401, detail=result["error"])
    return _auth_response(result["data"])


async def _get_user_data_with_caching(user_id: str, user_repo: UserRepository) -> dict:
    """
    Fetch user data with caching.

    Raises:
        HTTPException: If user is not found
    """
    async def fetch_user():
        user = await user_repo.get_user_by_id(user_id)
        if not user:
            raise HTTPException(status_code=401, detail="User not found")
        return _user_payload(user)

    return await get_cached(
        key=f"user:{user_id}",
        fallback_func=fetch_user,
        ttl_seconds=300
    )


def _extract_token(auth_token: Optional[str], authorization: Optional[str]) -> Optional[str]:
    # Cookie first (browser clients), then Bearer header (API consumers)
    if auth_token:
        return auth_token
    if authorization and authorization.startswith("Bearer "):
        return authorization.replace("Bearer ", "").strip()
    return None


# Dependency for protected routes
async def get_current_user(
    auth_token: Optional[str] = Cookie(None),
    authorization: Optional[str] = Header(None, alias="Authorization"),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """
    Dependency function to get current authenticated user.
    Identity always comes from the verified token, never from client-supplied ids.
    """
    token = _extract_token(auth_token, authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Missing authentication token")

    payload = decode_jwt(token)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token payload")

    user_dict = await _get_user_data_with_caching(str(user_id), UserRepository(db))
    return {
        "user_id": user_dict["id"],
        "phone_number": user_dict["phone_number"],
        "name": user_dict["name"],
        "language_preference": user_dict["language_preference"],
        "is_verified": user_dict["is_verified"],
    }


@auth_router.get("/me")
async def get_current_user_info(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get current user information and subscription tier"""
    subscription = await SubscriptionRepository(db).get_current_subscription(current_user["user_id"])
    return {
        "ok": True,
        **current_user,
        "subscription": {
            "tier": subscription.tier if subscription else TIER_FREE,
            "started_at": subscription.started_at.isoformat() if subscription else None,
            "expires_at": subscription.expires_at.isoformat() if subscription and subscription.expires_at else None,
            "is_active": subscription.is_active if subscription else False,
        },
    }


@auth_router.patch("/language")
async def update_language(
    request: LanguageRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Change the user's language preference"""
    result = await AuthService(db).update_language(current_user["user_id"], request.language)
    if result["is_error"]:
        raise HTTPException(status_code=400, detail=result["error"])
    invalidate_cached(f"user:{current_user['user_id']}")
    return {"ok": True, "language_preference": request.language}


@auth_router.post("/logout")
async def logout():
    """Logout and clear auth token cookie"""
    response = JSONResponse(
        content={
            "ok": True,
            "message": "Logged out successfully"
        }
    )
    response.set_cookie(
        key="auth_token",
        value="",
        httponly=True,
        secure=True,
        samesite="Lax",
        max_age=0
    )
    return response

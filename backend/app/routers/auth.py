import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pymongo.errors import DuplicateKeyError

from app.config import settings
from app.database import get_db
from app.models.user import UserLogin, UserRole
from app.routers.user import user_to_response
from app.services import ledger_service
from app.services.audit_service import log_audit
from app.services.auth_service import (
    clear_auth_cookie,
    create_access_token,
    hash_password,
    set_auth_cookie,
    verify_password,
)
from app.utils import utcnow

logger = logging.getLogger("courtside.auth")
router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login")
async def login(body: UserLogin, request: Request, response: Response, db=Depends(get_db)):
    """Login with email and password. The first login for an email signs it up."""
    email = body.email.lower()
    user = await db.users.find_one({"email": email})
    created = False

    if not user:
        now = utcnow()
        user_doc = {
            "email": email,
            "name": email.split("@")[0],
            "hashed_password": hash_password(body.password),
            "points": settings.STARTING_POINTS,
            "role": UserRole.user.value,
            "created_at": now,
            "updated_at": now,
        }
        try:
            result = await db.users.insert_one(user_doc)
        except DuplicateKeyError:
            # Concurrent first login for the same email won the insert
            user = await db.users.find_one({"email": email})
        else:
            user_doc["_id"] = result.inserted_id
            user = user_doc
            created = True
            await ledger_service.record_initial_credit(str(result.inserted_id), settings.STARTING_POINTS)
            logger.info("User registered: %s", result.inserted_id)

    user_id = str(user["_id"])

    if not created and not verify_password(body.password, user.get("hashed_password", "")):
        await log_audit(actor_id=user_id, target_id=user_id, action="LOGIN_FAILED", request=request)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password.",
        )

    token = create_access_token(user_id, email)
    set_auth_cookie(response, token)
    await log_audit(
        actor_id=user_id, target_id=user_id,
        action="REGISTER" if created else "LOGIN_SUCCESS", request=request,
    )
    return {"token": token, "user": user_to_response(user)}


@router.post("/logout")
async def logout(response: Response):
    clear_auth_cookie(response)
    return {"message": "Logged out."}

import logging

import app.database as _db
from app.config import settings
from app.models.user import UserRole
from app.services import ledger_service
from app.services.auth_service import hash_password
from app.utils import utcnow

logger = logging.getLogger("courtside.seed")


async def seed_admin_user() -> None:
    """Create or promote the configured admin account.

    Idempotent: an existing user with the seed email is promoted to admin
    and keeps its balance and password.
    """
    if not settings.SEED_ADMIN_EMAIL or not settings.SEED_ADMIN_PASSWORD:
        logger.debug("SEED_ADMIN_EMAIL/SEED_ADMIN_PASSWORD not set, skipping seed")
        return

    email = settings.SEED_ADMIN_EMAIL.strip().lower()
    if not email:
        logger.warning("Admin seed skipped: empty SEED_ADMIN_EMAIL")
        return

    now = utcnow()
    existing = await _db.db.users.find_one({"email": email})
    if existing:
        if existing.get("role") != UserRole.admin.value:
            await _db.db.users.update_one(
                {"_id": existing["_id"]},
                {"$set": {"role": UserRole.admin.value, "updated_at": now}},
            )
            logger.info("Seed user promoted to admin: %s", existing["_id"])
        else:
            logger.info("Seed admin already exists, skipping")
        return

    user_doc = {
        "email": email,
        "name": email.split("@")[0],
        "hashed_password": hash_password(settings.SEED_ADMIN_PASSWORD),
        "points": settings.STARTING_POINTS,
        "role": UserRole.admin.value,
        "created_at": now,
        "updated_at": now,
    }
    result = await _db.db.users.insert_one(user_doc)
    await ledger_service.record_initial_credit(str(result.inserted_id), settings.STARTING_POINTS)
    logger.info("Seed admin created: %s", result.inserted_id)

"""User service for clinician account lookups."""

import logging
from typing import Optional
from motor.motor_asyncio import AsyncIOMotorCollection
from lunglens.models.user import User

logger = logging.getLogger(__name__)


class UserStore:
    """Read-only access to clinician accounts."""

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    async def get_user(self, user_id: str) -> Optional[User]:
        """Look up a clinician account by identifier."""
        logger.debug(f"Fetching user: {user_id}")
        document = await self.collection.find_one({"userId": user_id})
        return User.from_mongo(document)

    async def authenticate(self, user_id: str, password: str) -> Optional[User]:
        """Return the user when the password matches, otherwise None."""
        user = await self.get_user(user_id)
        if user is None:
            logger.info(f"Login failed, unknown user: {user_id}")
            return None
        if not user.verify_password(password):
            logger.info(f"Login failed, bad password for user: {user_id}")
            return None
        logger.info(f"User logged in: {user_id} ({user.role.value})")
        return user

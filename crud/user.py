"""
UserRepository for database operations on User model
"""

from datetime import datetime
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from database_models import User


class UserRepository:
    """
    Repository class for User database operations.
    Encapsulates all database logic for the User model.
    """

    def __init__(self, db: AsyncSession):
        """
        Initialize the repository with a database session.

        Args:
            db: AsyncSession instance for database operations
        """
        self.db = db

    async def get_user_by_phone(self, phone_number: str) -> Optional[User]:
        """
        Retrieve a user by phone number.

        Args:
            phone_number: Normalized phone number

        Returns:
            User object if found, None otherwise
        """
        result = await self.db.execute(
            select(User).where(User.phone_number == phone_number)
        )
        return result.scalar_one_or_none()

    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.id == user_id)
        )
        return result.scalar_one_or_none()

    async def create_user(self, user_data: dict) -> User:
        """
        Create a new user in the database.

        Args:
            user_data: Dictionary containing user data. Must include:
                - phone_number: str
                - name: str
                Optional:
                - is_verified: bool (defaults to False)
                - language_preference: str (defaults to "en")

        Returns:
            Created User object
        """
        user = User(
            phone_number=user_data["phone_number"],
            name=user_data["name"],
            is_verified=user_data.get("is_verified", False),
            language_preference=user_data.get("language_preference", "en"),
        )
        self.db.add(user)
        await self.db.flush()  # Flush to get the ID without committing
        await self.db.refresh(user)
        return user

    async def update_user(self, user: User, updates: dict) -> User:
        """
        Update user fields.

        Args:
            user: User object to update
            updates: Dictionary of fields to update (e.g., {"language_preference": "my"})

        Returns:
            Updated User object
        """
        for key, value in updates.items():
            if hasattr(user, key):
                setattr(user, key, value)

        await self.db.flush()
        await self.db.refresh(user)
        return user

    async def touch_last_login(self, user: User) -> User:
        return await self.update_user(user, {"last_login_at": datetime.utcnow()})

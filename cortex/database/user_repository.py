"""Repository for User database operations."""

import logging
from typing import Optional
from sqlalchemy.orm import Session

from cortex.models.user import User
from cortex.database.models import UserDB

logger = logging.getLogger(__name__)


class UserRepository:
    """Repository for User database operations."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: str) -> Optional[User]:
        """Get user by ID."""
        user_db = self.db.query(UserDB).filter(UserDB.id == user_id).first()
        return user_db.to_pydantic() if user_db else None

    def create_or_update(self, user: User) -> User:
        """Create or update user (upsert)."""
        user_db = self.db.query(UserDB).filter(UserDB.id == user.id).first()
        try:
            if user_db:
                user_db.email = user.email
                user_db.name = user.name
                user_db.updated_at = user.updated_at
            else:
                user_db = UserDB.from_pydantic(user)
                self.db.add(user_db)
            self.db.commit()
            self.db.refresh(user_db)
            logger.debug(f"Saved user {user.id}: {user.email}")
            return user_db.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to save user {user.id}: {type(e).__name__}: {str(e)}")
            raise

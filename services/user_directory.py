# services/user_directory.py
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models.user import Profile
from services.errors import StorageError


@dataclass(frozen=True)
class AuthenticatedUser:
    id: str
    email: str
    name: Optional[str] = None

    def to_dict(self) -> dict:
        return {"id": self.id, "email": self.email, "name": self.name}


class UserDirectory:
    """Read-only lookups against the identity provider's profiles table."""

    def __init__(self, db: Session):
        self.db = db

    def _lookup(self, stmt) -> Optional[AuthenticatedUser]:
        try:
            profile = self.db.scalars(stmt).first()
        except SQLAlchemyError as e:
            raise StorageError("User directory lookup failed") from e
        if profile is None:
            return None
        return AuthenticatedUser(id=profile.id, email=profile.email, name=profile.name)

    def get_user(self, user_id: str) -> Optional[AuthenticatedUser]:
        return self._lookup(select(Profile).where(Profile.id == str(user_id)))

    def find_user(self, user_id: str, email: str) -> Optional[AuthenticatedUser]:
        return self._lookup(
            select(Profile).where(Profile.id == str(user_id), Profile.email == email)
        )

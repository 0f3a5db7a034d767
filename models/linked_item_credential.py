from database import Base
from datetime import datetime, timezone
import uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Boolean, DateTime, Index, String, Text, UniqueConstraint, text


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LinkedItemCredential(Base):
    """One Plaid access token for one (user, linked item) pair. Backend access only."""

    __tablename__ = "linked_item_credentials"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    item_id: Mapped[str] = mapped_column(String(128), nullable=False)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    institution_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    institution_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))

    __table_args__ = (
        UniqueConstraint("user_id", "item_id", name="uq_linked_item_credentials_user_item"),
        Index(
            "ix_linked_item_credentials_active",
            "user_id",
            "is_active",
            postgresql_where=text("is_active = true"),
        ),
    )

    def __repr__(self) -> str:
        # never include the access token
        return f"<LinkedItemCredential id={self.id} item_id={self.item_id} active={self.is_active}>"

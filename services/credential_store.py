# services/credential_store.py
"""
Durable storage of Plaid access tokens, one row per (user, item).

Only the backend process talks to this table. Writes commit before the
call returns, and the re-link path is a single INSERT ... ON CONFLICT so
concurrent re-links of the same item cannot produce duplicate rows.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models.linked_item_credential import LinkedItemCredential
from services.errors import StorageError, ValidationError

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _require(value: Optional[str], name: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{name} is required", display_message="Missing required information.")
    return str(value).strip()


class CredentialStore:
    def __init__(self, db: Session):
        self.db = db

    def _fail(self, action: str, exc: SQLAlchemyError) -> StorageError:
        self.db.rollback()
        logger.error("credential_store_%s_failed error=%s", action, type(exc).__name__)
        return StorageError(f"Credential store {action} failed")

    def upsert(
        self,
        user_id: str,
        item_id: str,
        access_token: str,
        institution_id: Optional[str] = None,
        institution_name: Optional[str] = None,
    ) -> str:
        """Insert or re-link a credential and return its id."""
        user_id = _require(user_id, "user_id")
        item_id = _require(item_id, "item_id")
        access_token = _require(access_token, "access_token")

        dialect = self.db.get_bind().dialect.name
        insert = _UPSERT_DIALECTS.get(dialect)
        if insert is None:
            raise StorageError(f"Upsert is not supported on dialect {dialect!r}")

        now = datetime.now(timezone.utc)
        table = LinkedItemCredential.__table__
        stmt = insert(table).values(
            id=str(uuid.uuid4()),
            user_id=user_id,
            item_id=item_id,
            access_token=access_token,
            institution_id=institution_id,
            institution_name=institution_name,
            created_at=now,
            updated_at=now,
            last_used_at=now,
            is_active=True,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.user_id, table.c.item_id],
            set_={
                "access_token": stmt.excluded.access_token,
                # keep existing display metadata when the re-link omits it
                "institution_id": func.coalesce(stmt.excluded.institution_id, table.c.institution_id),
                "institution_name": func.coalesce(stmt.excluded.institution_name, table.c.institution_name),
                "updated_at": now,
                "last_used_at": now,
                "is_active": True,
            },
        ).returning(table.c.id)

        try:
            credential_id = self.db.execute(stmt).scalar_one()
            self.db.commit()
        except SQLAlchemyError as e:
            raise self._fail("upsert", e) from e

        logger.info("credential_upserted credential_id=%s", credential_id)
        return credential_id

    def list_active(self, user_id: str) -> List[LinkedItemCredential]:
        stmt = select(LinkedItemCredential).where(
            LinkedItemCredential.user_id == str(user_id),
            LinkedItemCredential.is_active.is_(True),
        )
        try:
            return list(self.db.scalars(stmt).all())
        except SQLAlchemyError as e:
            raise self._fail("list", e) from e

    def deactivate(self, user_id: str, item_id: str) -> bool:
        """Mark a credential inactive. Idempotent; returns False when the pair is unknown."""
        user_id = _require(user_id, "user_id")
        item_id = _require(item_id, "item_id")
        try:
            row = self.db.scalars(
                select(LinkedItemCredential).where(
                    LinkedItemCredential.user_id == user_id,
                    LinkedItemCredential.item_id == item_id,
                )
            ).first()
            if row is None:
                return False
            if row.is_active:
                row.is_active = False
                self.db.commit()
                logger.info("credential_deactivated credential_id=%s", row.id)
            return True
        except SQLAlchemyError as e:
            raise self._fail("deactivate", e) from e

    def get_active(self, user_id: str, item_id: str) -> Optional[LinkedItemCredential]:
        try:
            return self.db.scalars(
                select(LinkedItemCredential).where(
                    LinkedItemCredential.user_id == str(user_id),
                    LinkedItemCredential.item_id == str(item_id),
                    LinkedItemCredential.is_active.is_(True),
                )
            ).first()
        except SQLAlchemyError as e:
            raise self._fail("get", e) from e

    def mark_used(self, user_id: str, item_ids: Iterable[str]) -> None:
        ids = [i for i in item_ids if i]
        if not ids:
            return
        try:
            self.db.execute(
                update(LinkedItemCredential)
                .where(
                    LinkedItemCredential.user_id == str(user_id),
                    LinkedItemCredential.item_id.in_(ids),
                )
                .values(last_used_at=datetime.now(timezone.utc))
            )
            self.db.commit()
        except SQLAlchemyError as e:
            raise self._fail("mark_used", e) from e

    def list_connections(self, user_id: str) -> List[Dict]:
        """Active items rendered for display. Never includes the access token."""
        return [
            {
                "id": c.id,
                "item_id": c.item_id,
                "institution_id": c.institution_id,
                "institution_name": c.institution_name,
                "created_at": c.created_at.isoformat() if c.created_at else None,
                "last_used_at": c.last_used_at.isoformat() if c.last_used_at else None,
            }
            for c in sorted(self.list_active(user_id), key=lambda c: (c.created_at, c.id))
        ]

    def connection_summary(self, user_id: str) -> Dict:
        credentials = self.list_active(user_id)
        used = [c.last_used_at for c in credentials if c.last_used_at]
        created = [c.created_at for c in credentials if c.created_at]
        return {
            "connected_accounts": len(credentials),
            "institutions": [c.institution_name for c in credentials if c.institution_name],
            "last_plaid_usage": max(used).isoformat() if used else None,
            "first_connected": min(created).isoformat() if created else None,
        }

import unittest

from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from database import Base
from models.linked_item_credential import LinkedItemCredential
from services.credential_store import CredentialStore
from services.errors import StorageError, ValidationError


def _memory_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False)()


class CredentialStoreTests(unittest.TestCase):
    def setUp(self):
        self.db = _memory_session()
        self.store = CredentialStore(self.db)

    def tearDown(self):
        self.db.close()

    def _rows(self, user_id, item_id):
        return self.db.scalar(
            select(func.count()).select_from(LinkedItemCredential).where(
                LinkedItemCredential.user_id == user_id,
                LinkedItemCredential.item_id == item_id,
            )
        )

    def test_upsert_inserts_new_credential(self):
        credential_id = self.store.upsert("u1", "item-a", "access-sandbox-1", "ins_1", "Fidelity")

        rows = self.store.list_active("u1")
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].id, credential_id)
        self.assertEqual(rows[0].access_token, "access-sandbox-1")
        self.assertEqual(rows[0].institution_name, "Fidelity")
        self.assertTrue(rows[0].is_active)
        self.assertIsNotNone(rows[0].last_used_at)

    def test_relink_same_item_replaces_token_in_place(self):
        first_id = self.store.upsert("u1", "item-a", "access-sandbox-old", "ins_1", "Fidelity")
        second_id = self.store.upsert("u1", "item-a", "access-sandbox-new")

        self.assertEqual(first_id, second_id)
        self.assertEqual(self._rows("u1", "item-a"), 1)
        rows = self.store.list_active("u1")
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].access_token, "access-sandbox-new")
        # metadata omitted on re-link is kept
        self.assertEqual(rows[0].institution_name, "Fidelity")

    def test_relink_reactivates_deactivated_item(self):
        self.store.upsert("u1", "item-a", "access-sandbox-1")
        self.store.deactivate("u1", "item-a")
        self.assertEqual(self.store.list_active("u1"), [])

        self.store.upsert("u1", "item-a", "access-sandbox-2")

        rows = self.store.list_active("u1")
        self.assertEqual(len(rows), 1)
        self.assertTrue(rows[0].is_active)
        self.assertEqual(rows[0].access_token, "access-sandbox-2")

    def test_upsert_requires_user_item_and_token(self):
        with self.assertRaises(ValidationError):
            self.store.upsert("", "item-a", "access-sandbox-1")
        with self.assertRaises(ValidationError):
            self.store.upsert("u1", None, "access-sandbox-1")
        with self.assertRaises(ValidationError):
            self.store.upsert("u1", "item-a", "   ")
        self.assertEqual(self.store.list_active("u1"), [])

    def test_list_active_is_scoped_to_user(self):
        self.store.upsert("u1", "item-a", "access-sandbox-1")
        self.store.upsert("u1", "item-b", "access-sandbox-2")
        self.store.upsert("u2", "item-c", "access-sandbox-3")

        self.assertEqual({c.item_id for c in self.store.list_active("u1")}, {"item-a", "item-b"})
        self.assertEqual([c.item_id for c in self.store.list_active("u2")], ["item-c"])
        self.assertEqual(self.store.list_active("nobody"), [])

    def test_deactivate_is_idempotent(self):
        self.store.upsert("u1", "item-a", "access-sandbox-1")

        self.assertTrue(self.store.deactivate("u1", "item-a"))
        self.assertTrue(self.store.deactivate("u1", "item-a"))
        self.assertFalse(self.store.deactivate("u1", "missing"))
        self.assertEqual(self.store.list_active("u1"), [])
        self.assertEqual(self._rows("u1", "item-a"), 1)

    def test_connections_never_expose_access_token(self):
        self.store.upsert("u1", "item-a", "access-sandbox-secret", "ins_1", "Fidelity")
        self.store.upsert("u1", "item-b", "access-sandbox-secret2", "ins_2", "Vanguard")

        connections = self.store.list_connections("u1")
        self.assertEqual(len(connections), 2)
        for c in connections:
            self.assertNotIn("access_token", c)

        summary = self.store.connection_summary("u1")
        self.assertEqual(summary["connected_accounts"], 2)
        self.assertEqual(sorted(summary["institutions"]), ["Fidelity", "Vanguard"])
        self.assertIsNotNone(summary["first_connected"])

    def test_mark_used_ignores_empty_input(self):
        self.store.upsert("u1", "item-a", "access-sandbox-1")
        self.store.mark_used("u1", [])
        self.store.mark_used("u1", ["item-a"])
        self.assertIsNotNone(self.store.list_active("u1")[0].last_used_at)

    def test_database_failure_surfaces_as_storage_error(self):
        Base.metadata.drop_all(self.db.get_bind())
        with self.assertRaises(StorageError):
            self.store.list_active("u1")
        with self.assertRaises(StorageError):
            self.store.upsert("u1", "item-a", "access-sandbox-1")


if __name__ == "__main__":
    unittest.main()

"""
Tests for PendingPaymentStore persistence.
"""

import json
from pathlib import Path

from leadhub.client.pending_store import PendingPayment, PendingPaymentStore
from leadhub.models.api import PurchaseKind

PENDING = PendingPayment(
    session_id="cs_test_123", kind=PurchaseKind.COINS, expires_at=1_900_000_000
)


class TestInMemory:
    def test_save_load_clear(self) -> None:
        store = PendingPaymentStore()

        store.save(PENDING)
        assert store.load() == PENDING

        store.clear()
        assert store.load() is None


class TestFileBacked:
    def test_survives_new_instance(self, tmp_path: Path) -> None:
        path = tmp_path / "state" / "pending.json"
        PendingPaymentStore(path).save(PENDING)

        assert PendingPaymentStore(path).load() == PENDING
        assert json.loads(path.read_text()) == {
            "session_id": "cs_test_123",
            "kind": "coins",
            "expires_at": 1_900_000_000,
        }

    def test_no_temp_files_left_behind(self, tmp_path: Path) -> None:
        path = tmp_path / "pending.json"

        PendingPaymentStore(path).save(PENDING)

        assert [p.name for p in tmp_path.iterdir()] == ["pending.json"]

    def test_missing_file(self, tmp_path: Path) -> None:
        assert PendingPaymentStore(tmp_path / "absent.json").load() is None

    def test_corrupt_file_ignored(self, tmp_path: Path) -> None:
        path = tmp_path / "pending.json"
        path.write_text("{not json")

        assert PendingPaymentStore(path).load() is None

    def test_unknown_kind_ignored(self, tmp_path: Path) -> None:
        path = tmp_path / "pending.json"
        path.write_text(json.dumps({"session_id": "cs_1", "kind": "gift", "expires_at": 1}))

        assert PendingPaymentStore(path).load() is None

    def test_clear_removes_file(self, tmp_path: Path) -> None:
        path = tmp_path / "pending.json"
        store = PendingPaymentStore(path)
        store.save(PENDING)

        store.clear()
        store.clear()

        assert not path.exists()
        assert PendingPaymentStore(path).load() is None

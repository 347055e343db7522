"""
Pending Payment Store - Remembers the payment session being verified.

The record survives restarts when a state file is configured, so an
interrupted verification can be resumed.
"""

import json
import os
import tempfile
from dataclasses import asdict, dataclass
from pathlib import Path

from structlog import get_logger

from leadhub.models.api import PurchaseKind

logger = get_logger(__name__)


@dataclass(frozen=True)
class PendingPayment:
    """A payment session awaiting verification."""

    session_id: str
    kind: PurchaseKind
    expires_at: int  # epoch seconds


class PendingPaymentStore:
    """
    Holds at most one pending payment, in memory or in a JSON file.

    Usage:
        store = PendingPaymentStore("~/.leadhub/pending.json")
        store.save(PendingPayment("cs_123", PurchaseKind.SUBSCRIPTION, 1735689600))
        pending = store.load()
        store.clear()
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path).expanduser() if path is not None else None
        self._memory: PendingPayment | None = None

    def save(self, pending: PendingPayment) -> None:
        self._memory = pending
        if self.path is None:
            return

        payload = asdict(pending)
        payload["kind"] = pending.kind.value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Write-then-rename so a crash never leaves half a file
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".pending-")
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(payload, handle)
        os.replace(tmp_name, self.path)
        logger.debug("pending_payment_saved", session_id=pending.session_id)

    def load(self) -> PendingPayment | None:
        if self.path is None or self._memory is not None:
            return self._memory
        if not self.path.exists():
            return None

        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
            pending = PendingPayment(
                session_id=str(payload["session_id"]),
                kind=PurchaseKind(payload["kind"]),
                expires_at=int(payload["expires_at"]),
            )
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning("pending_payment_unreadable", path=str(self.path), error=str(exc))
            return None

        self._memory = pending
        return pending

    def clear(self) -> None:
        self._memory = None
        if self.path is not None:
            self.path.unlink(missing_ok=True)
            logger.debug("pending_payment_cleared")

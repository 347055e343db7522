"""
Session Revocation Service.

Logged-out session tokens stay cryptographically valid until they expire,
so their SHA-256 hashes are kept in an in-memory cache backed by the
revoked_sessions table. Raw tokens are never stored.
"""

import hashlib
import time
from datetime import UTC, datetime
from typing import ClassVar

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from leadhub.db.models import RevokedSession

logger = get_logger(__name__)


class SessionRevocationService:
    """
    Tracks revoked session tokens.

    Usage:
        if await session_revocation_service.is_revoked(token, db):
            raise HTTPException(401, "Session has been revoked")

        await session_revocation_service.revoke(token, user_id, expires_at, db)
    """

    # Class-level cache shared across instances
    # Key: token_hash, Value: expires_at timestamp
    _cache: ClassVar[dict[str, float]] = {}
    _cache_loaded: ClassVar[bool] = False
    _last_cleanup: ClassVar[float] = 0
    _CLEANUP_INTERVAL: ClassVar[int] = 300  # 5 minutes

    @staticmethod
    def hash_token(token: str) -> str:
        """SHA-256 hex digest of a token."""
        return hashlib.sha256(token.encode()).hexdigest()

    async def load_cache(self, db: AsyncSession) -> None:
        """Load unexpired revocations from the database once per process."""
        if SessionRevocationService._cache_loaded:
            return

        now = datetime.now(UTC)
        stmt = select(RevokedSession).where(RevokedSession.expires_at > now)
        result = await db.execute(stmt)
        rows = result.scalars().all()

        for row in rows:
            SessionRevocationService._cache[row.token_hash] = row.expires_at.timestamp()

        SessionRevocationService._cache_loaded = True
        logger.info("session_revocation_cache_loaded", count=len(rows))

    async def is_revoked(self, token: str, db: AsyncSession) -> bool:
        """True if the token was revoked and has not expired yet."""
        if not SessionRevocationService._cache_loaded:
            await self.load_cache(db)

        await self._cleanup_if_needed(db)

        token_hash = self.hash_token(token)
        expires_at = SessionRevocationService._cache.get(token_hash)
        if expires_at is None:
            return False

        if time.time() < expires_at:
            logger.info("revoked_session_rejected", token_hash=token_hash[:16])
            return True

        del SessionRevocationService._cache[token_hash]
        return False

    async def revoke(
        self,
        token: str,
        user_id: int | None,
        expires_at: datetime,
        db: AsyncSession,
    ) -> None:
        """Revoke a token until its natural expiry. Idempotent."""
        token_hash = self.hash_token(token)

        stmt = (
            insert(RevokedSession)
            .values(
                token_hash=token_hash,
                user_id=user_id,
                revoked_at=datetime.now(UTC),
                expires_at=expires_at,
            )
            .on_conflict_do_nothing(index_elements=["token_hash"])
        )
        await db.execute(stmt)
        await db.commit()

        SessionRevocationService._cache[token_hash] = expires_at.timestamp()
        logger.info(
            "session_revoked",
            token_hash=token_hash[:16],
            user_id=user_id,
            expires_at=expires_at.isoformat(),
        )

    async def _cleanup_if_needed(self, db: AsyncSession) -> None:
        now = time.time()
        elapsed = now - SessionRevocationService._last_cleanup
        if elapsed < SessionRevocationService._CLEANUP_INTERVAL:
            return

        SessionRevocationService._last_cleanup = now

        expired = [h for h, exp in SessionRevocationService._cache.items() if now > exp]
        for h in expired:
            del SessionRevocationService._cache[h]

        stmt = delete(RevokedSession).where(RevokedSession.expires_at < datetime.now(UTC))
        result = await db.execute(stmt)
        await db.commit()
        rows_deleted = result.rowcount if result.rowcount else 0  # type: ignore[attr-defined]

        if expired or rows_deleted > 0:
            logger.info(
                "revoked_sessions_cleanup",
                cache_removed=len(expired),
                db_removed=rows_deleted,
            )

    @classmethod
    def reset_cache(cls) -> None:
        """Forget cached state (tests, process re-init)."""
        cls._cache = {}
        cls._cache_loaded = False
        cls._last_cleanup = 0


# Global singleton
session_revocation_service = SessionRevocationService()

"""
Versioned, append-only store for GitHub data.

Rows are never updated: a refresh inserts a new row and the newest row for
the current schema version wins. A schema bump makes older rows invisible,
forcing a re-fetch.
"""

from typing import Any, List, Optional

from sqlalchemy import desc
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from deploy_audit.core.logging import get_logger
from deploy_audit.db.models.github_snapshot import GithubSnapshot, SnapshotKind
from deploy_audit.services.verification.types import CURRENT_SCHEMA_VERSION

logger = get_logger(__name__)


def pr_subject(number: int) -> str:
    return f"pr:{number}"


def commit_subject(sha: str) -> str:
    return f"commit:{sha}"


def compare_subject(base: str, head: str) -> str:
    return f"compare:{base}...{head}"


class SnapshotStore:
    def __init__(self, session: AsyncSession, schema_version: int = CURRENT_SCHEMA_VERSION):
        self.session = session
        self.schema_version = schema_version
        self.used_ids: List[int] = []

    async def latest(
        self, owner: str, repo: str, subject: str, kind: SnapshotKind
    ) -> Optional[GithubSnapshot]:
        """Newest snapshot for the subject at the current schema version."""
        statement = (
            select(GithubSnapshot)
            .where(
                GithubSnapshot.owner == owner,
                GithubSnapshot.repo == repo,
                GithubSnapshot.subject == subject,
                GithubSnapshot.data_kind == kind.value,
                GithubSnapshot.schema_version == self.schema_version,
            )
            .order_by(desc(GithubSnapshot.fetched_at), desc(GithubSnapshot.id))
            .limit(1)
        )
        result = await self.session.execute(statement)
        snapshot = result.scalars().first()
        if snapshot is not None:
            self._track(snapshot)
        return snapshot

    async def record(
        self,
        owner: str,
        repo: str,
        subject: str,
        kind: SnapshotKind,
        data: Any,
        available: bool = True,
    ) -> GithubSnapshot:
        """Append a snapshot. Flushed, not committed."""
        snapshot = GithubSnapshot(
            owner=owner,
            repo=repo,
            subject=subject,
            data_kind=kind.value,
            schema_version=self.schema_version,
            available=available,
            data=data,
        )
        self.session.add(snapshot)
        await self.session.flush()
        logger.debug("Stored %s snapshot for %s/%s %s", kind.value, owner, repo, subject)
        self._track(snapshot)
        return snapshot

    def _track(self, snapshot: GithubSnapshot) -> None:
        if snapshot.id is not None and snapshot.id not in self.used_ids:
            self.used_ids.append(snapshot.id)

"""Optimistic team membership mutations for the acting user.

Per entity id the coordinator moves through::

    idle -> pending(add|remove) -> committed | rolled_back | failed -> idle

A toggle for an id that is already pending is ignored: no queueing and no
cancellation. On failure the optimistic write is kept unless
``rollback_on_failure`` is set; either way a notice is reported and the
next authoritative load reconciles the cache with the server.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Literal

import httpx

from crew_directory.action_messages import build_membership_notice
from crew_directory.errors import FetchError, MutationError
from crew_directory.models import DirectoryConfig, Entity, MembershipRecord
from crew_directory.services.interfaces import TeamService

logger = logging.getLogger(__name__)

MutationOp = Literal["add", "remove"]

STATE_IDLE = "idle"
STATE_PENDING_ADD = "pending_add"
STATE_PENDING_REMOVE = "pending_remove"

OUTCOME_IGNORED = "ignored"
OUTCOME_COMMITTED = "committed"
OUTCOME_ROLLED_BACK = "rolled_back"
OUTCOME_FAILED = "failed"


class MembershipCoordinator:
    """Owns the membership cache for one acting user."""

    def __init__(
        self,
        *,
        owner_id: str,
        team_service: TeamService,
        config: DirectoryConfig,
        client: httpx.AsyncClient | None = None,
        on_notice: Callable[[str], None] | None = None,
        rollback_on_failure: bool | None = None,
    ) -> None:
        self.owner_id = owner_id
        self._team = team_service
        self._config = config
        self._client = client
        self._on_notice = on_notice
        self._rollback_on_failure = (
            config.rollback_on_failed_mutation
            if rollback_on_failure is None
            else rollback_on_failure
        )
        self._records: dict[str, MembershipRecord] = {}
        self._pending: dict[str, MutationOp] = {}
        self.last_notice: str | None = None

    @property
    def records(self) -> Mapping[str, MembershipRecord]:
        return MappingProxyType(self._records)

    def is_member(self, entity_id: str) -> bool:
        return entity_id in self._records

    def is_pending(self, entity_id: str) -> bool:
        return entity_id in self._pending

    def state(self, entity_id: str) -> str:
        operation = self._pending.get(entity_id)
        if operation == "add":
            return STATE_PENDING_ADD
        if operation == "remove":
            return STATE_PENDING_REMOVE
        return STATE_IDLE

    def _notify(self, message: str) -> None:
        self.last_notice = message
        if self._on_notice is not None:
            self._on_notice(message)

    async def load(self) -> bool:
        """Replace the cache with the server's list. Returns False on failure."""
        try:
            members = await self._team.fetch_team_members(
                client=self._client,
                owner_id=self.owner_id,
                base_url=self._config.base_url,
                auth_token=self._config.auth_token,
                timeout_seconds=self._config.request_timeout_seconds,
                max_retries=self._config.max_retries,
            )
        except FetchError as exc:
            logger.warning("Failed to load team members: %s", exc.message)
            return False

        records = {record.user_id: record for record in members}
        # Mutations still in flight keep their optimistic effect
        for entity_id, operation in self._pending.items():
            if operation == "add":
                if entity_id in self._records:
                    records.setdefault(entity_id, self._records[entity_id])
            else:
                records.pop(entity_id, None)
        self._records = records
        logger.debug("Loaded %d team members for %s", len(records), self.owner_id)
        return True

    def _apply_optimistic(self, entity: Entity, operation: MutationOp) -> None:
        if operation == "add":
            self._records[entity.id] = MembershipRecord(
                user_id=entity.id,
                owner_id=self.owner_id,
                name=entity.name,
                role=entity.primary_role,
                added_at=datetime.now(UTC).isoformat(),
                optimistic=True,
            )
        else:
            self._records.pop(entity.id, None)

    def _rollback(self, entity_id: str, previous: MembershipRecord | None) -> None:
        if previous is None:
            self._records.pop(entity_id, None)
        else:
            self._records[entity_id] = previous

    async def _send(self, entity_id: str, operation: MutationOp) -> None:
        kwargs = {
            "client": self._client,
            "user_id": entity_id,
            "base_url": self._config.base_url,
            "auth_token": self._config.auth_token,
            "timeout_seconds": self._config.request_timeout_seconds,
        }
        if operation == "add":
            await self._team.add_team_member(**kwargs)
        else:
            await self._team.remove_team_member(**kwargs)

    async def toggle(self, entity: Entity) -> str:
        """Add or remove ``entity`` optimistically and confirm with the server."""
        entity_id = entity.id
        if entity_id in self._pending:
            logger.debug("Ignoring toggle for %s: mutation already pending", entity_id)
            return OUTCOME_IGNORED

        operation: MutationOp = "remove" if entity_id in self._records else "add"
        previous = self._records.get(entity_id)
        self._apply_optimistic(entity, operation)
        self._pending[entity_id] = operation
        logger.debug("Team %s for %s pending", operation, entity_id)
        # The id stays pending until the post-commit refetch returns
        try:
            try:
                await self._send(entity_id, operation)
            except MutationError as exc:
                rolled_back = self._rollback_on_failure
                if rolled_back:
                    self._rollback(entity_id, previous)
                logger.warning(
                    "Team %s for %s failed (rolled_back=%s): %s",
                    operation,
                    entity_id,
                    rolled_back,
                    exc.message,
                )
                self._notify(build_membership_notice(operation, entity.name, rolled_back=rolled_back))
                return OUTCOME_ROLLED_BACK if rolled_back else OUTCOME_FAILED
            await self.load()
            return OUTCOME_COMMITTED
        finally:
            self._pending.pop(entity_id, None)


__all__ = [
    "OUTCOME_COMMITTED",
    "OUTCOME_FAILED",
    "OUTCOME_IGNORED",
    "OUTCOME_ROLLED_BACK",
    "STATE_IDLE",
    "STATE_PENDING_ADD",
    "STATE_PENDING_REMOVE",
    "MembershipCoordinator",
    "MutationOp",
]

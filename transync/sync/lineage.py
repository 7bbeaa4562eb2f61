"""LineageManager — identity and role of the local dictionary.

A lineage is one logical dictionary across devices and owners.  It keeps
its identifier through every upload and download; only :meth:`fork` mints
a new one.
"""

from __future__ import annotations

import logging
import uuid
from enum import Enum
from typing import Any

from transync.errors import InvariantViolation
from transync.models.translation import LineageRole, RemoteState
from transync.sync.permissions import Standing, allowed_actions, require_permission

logger = logging.getLogger(__name__)


class ContributorAction(str, Enum):
    """The only transitions open to a non-owner of an existing lineage."""

    CONTRIBUTE_AS_BRANCH = "contribute_as_branch"
    DOWNLOAD_LATEST = "download_latest"
    FORK = "fork"


def new_lineage_id() -> str:
    return str(uuid.uuid4())


def role_for(remote: RemoteState) -> LineageRole:
    """Main if owned with no parent, Branch if owned with a parent, else None."""
    if not remote.is_owner:
        return LineageRole.NONE
    if remote.parent_owner_name:
        return LineageRole.BRANCH
    return LineageRole.MAIN


def standing_for(remote: RemoteState) -> Standing:
    if not remote.exists:
        return Standing.UNPUBLISHED
    role = role_for(remote)
    if role is LineageRole.MAIN:
        return Standing.MAIN_OWNER
    if role is LineageRole.BRANCH:
        return Standing.BRANCH_OWNER
    return Standing.CONTRIBUTOR


class LineageManager:
    """Own the lineage identifier and the optional parent link.

    Parameters
    ----------
    lineage_id:
        Existing identifier; a fresh one is minted when omitted.
    parent_id:
        Lineage this copy contributes to as a Branch, if any.
    """

    def __init__(self, lineage_id: str | None = None, parent_id: str | None = None) -> None:
        self._lineage_id = lineage_id or new_lineage_id()
        self._parent_id = parent_id

    @property
    def lineage_id(self) -> str:
        return self._lineage_id

    @property
    def parent_id(self) -> str | None:
        return self._parent_id

    @property
    def is_branch(self) -> bool:
        return self._parent_id is not None

    # -- Transitions ----------------------------------------------------------

    def fork(self) -> RemoteState:
        """Start an independent lineage.

        Mints a new identifier, drops any parent link and returns the remote
        state the caller must adopt (nothing exists remotely yet).  The old
        relationship cannot be recovered afterwards.
        """
        previous = self._lineage_id
        self._lineage_id = new_lineage_id()
        self._parent_id = None
        logger.info("Forked lineage %s -> %s", previous, self._lineage_id)
        return RemoteState.missing()

    def promote_as_branch(self, parent_id: str | None = None) -> None:
        """Mark this copy as a contribution to *parent_id*.

        Defaults to the current lineage, which is the usual case: a
        contributor branches from the Main that shares its identifier.
        """
        self._parent_id = parent_id or self._lineage_id
        logger.info("Lineage %s now contributes to %s", self._lineage_id, self._parent_id)

    # -- Queries --------------------------------------------------------------

    role_for = staticmethod(role_for)
    standing_for = staticmethod(standing_for)

    def allowed_actions(self, remote: RemoteState) -> frozenset[str]:
        return allowed_actions(standing_for(remote))

    def contributor_actions(self, remote: RemoteState) -> frozenset[ContributorAction]:
        """Legal actions when the lineage exists remotely under another owner.

        Returns an empty set in every other standing.
        """
        if standing_for(remote) is not Standing.CONTRIBUTOR:
            return frozenset()
        return frozenset(ContributorAction)

    def require_upload_allowed(self, remote: RemoteState) -> None:
        """Refuse an upload that would overwrite someone else's Main.

        A contributor may only upload once promoted to a Branch.

        Raises
        ------
        ActionNotAllowed
            If the upload is not legal from the current standing.
        """
        standing = standing_for(remote)
        if standing is Standing.CONTRIBUTOR:
            if not self.is_branch:
                require_permission(standing, "upload")
            require_permission(standing, "contribute")
            return
        require_permission(standing, "upload")

    def upload_metadata(self) -> dict[str, Any]:
        """Lineage fields sent alongside uploaded content."""
        meta: dict[str, Any] = {"uuid": self._lineage_id}
        if self._parent_id is not None:
            meta["parent_uuid"] = self._parent_id
        return meta

    def check_identity(self, content_lineage: str | None) -> None:
        """Refuse remote content that belongs to a different lineage."""
        if content_lineage is not None and content_lineage != self._lineage_id:
            raise InvariantViolation(
                f"Remote content lineage {content_lineage} does not match "
                f"local lineage {self._lineage_id}"
            )

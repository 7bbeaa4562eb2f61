"""Which sync actions each lineage standing may perform."""

from __future__ import annotations

import logging
from enum import Enum

from transync.errors import RemoteRejectedError

logger = logging.getLogger(__name__)


class Standing(str, Enum):
    """Position of the local client relative to the remote copy."""

    UNPUBLISHED = "unpublished"
    MAIN_OWNER = "main_owner"
    BRANCH_OWNER = "branch_owner"
    CONTRIBUTOR = "contributor"


# Permission matrix: action -> set of standings allowed
_PERMISSIONS: dict[str, set[Standing]] = {
    "upload": {Standing.UNPUBLISHED, Standing.MAIN_OWNER, Standing.BRANCH_OWNER},
    "contribute": {Standing.CONTRIBUTOR, Standing.BRANCH_OWNER},
    "download": {Standing.MAIN_OWNER, Standing.BRANCH_OWNER, Standing.CONTRIBUTOR},
    "merge": {Standing.MAIN_OWNER, Standing.BRANCH_OWNER},
    "fork": {
        Standing.UNPUBLISHED,
        Standing.MAIN_OWNER,
        Standing.BRANCH_OWNER,
        Standing.CONTRIBUTOR,
    },
}


class ActionNotAllowed(RemoteRejectedError):
    """Raised when the local standing forbids a sync action."""


def check_permission(standing: Standing, action: str) -> bool:
    """Return True if *standing* may perform *action*."""
    return standing in _PERMISSIONS.get(action, set())


def require_permission(standing: Standing, action: str) -> None:
    """Raise :class:`ActionNotAllowed` if *standing* may not perform *action*."""
    if not check_permission(standing, action):
        logger.warning("Refused '%s' for standing '%s'", action, standing.value)
        raise ActionNotAllowed(
            f"Action '{action}' is not allowed when the local copy is "
            f"'{standing.value}'."
        )


def allowed_actions(standing: Standing) -> frozenset[str]:
    """All actions *standing* may perform."""
    return frozenset(a for a, roles in _PERMISSIONS.items() if standing in roles)

"""Error-to-presentation mapping.

Turns classified errors into the payload the presentation layer renders and
into a list of typed recovery actions it can offer.

Usage:
    from flowpilot.core.errors.base import error_to_response, get_recovery_actions

    try:
        await console.update(collection_id, item_id, fields)
    except CmsError as e:
        payload = error_to_response(e)
        actions = get_recovery_actions(e)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from flowpilot.core.errors.types import CmsError, ErrorKind


class RecoveryActionType(str, Enum):
    """What the presentation layer should do when an action is picked."""

    RETRY = "retry"
    UPDATE_API_KEY = "update_api_key"
    CHECK_CONNECTION = "check_connection"
    REFRESH = "refresh"


@dataclass(frozen=True)
class RecoveryAction:
    label: str
    action: RecoveryActionType
    primary: bool = False


_KIND_ACTIONS: Dict[ErrorKind, RecoveryAction] = {
    ErrorKind.AUTHENTICATION: RecoveryAction(
        "Update API key", RecoveryActionType.UPDATE_API_KEY, primary=True
    ),
    ErrorKind.NETWORK: RecoveryAction("Check connection", RecoveryActionType.CHECK_CONNECTION),
}


def get_recovery_actions(error: CmsError) -> List[RecoveryAction]:
    """Return the recovery actions to offer for a classified error.

    Retryable errors get a primary "Try again". Authentication and network
    errors add their specific action. A recoverable error with nothing else
    to offer gets a plain "Refresh".
    """
    actions: List[RecoveryAction] = []

    if error.retryable:
        actions.append(RecoveryAction("Try again", RecoveryActionType.RETRY, primary=True))

    specific = _KIND_ACTIONS.get(error.kind)
    if specific is not None:
        actions.append(specific)

    if not actions and error.recoverable:
        actions.append(RecoveryAction("Refresh", RecoveryActionType.REFRESH))

    return actions


def error_to_response(exc: BaseException) -> Optional[dict]:
    """Convert a classified error to a presentation payload, or None if unknown.

    Args:
        exc: The exception to convert.

    Returns:
        A dict with kind, messages, flags, context and recovery actions, or
        None if ``exc`` is not a ``CmsError``.
    """
    if not isinstance(exc, CmsError):
        return None

    payload = exc.to_dict()
    payload["recovery_actions"] = [
        {"label": a.label, "action": a.action.value, "primary": a.primary}
        for a in get_recovery_actions(exc)
    ]
    return payload

"""Role → capability derivation and the authorization gate.

The capability table is the single source of truth for what each
editorial role may change.  Controller commands declare the capability
they need with :func:`requires`; nothing else compares roles.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from enum import StrEnum
from typing import Any, TypeVar

from afterpath.content.models import AdminRole

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class Capability(StrEnum):
    """A mutating operation family that a role may be granted."""

    EDIT_STORY = "edit_story"
    PUBLISH_STORY = "publish_story"
    DELETE_STORY = "delete_story"
    MANAGE_CATEGORIES = "manage_categories"
    REVIEW_SUBMISSIONS = "review_submissions"
    MANAGE_ACCOUNTS = "manage_accounts"
    MANAGE_BRANDING = "manage_branding"


_ROLE_CAPABILITIES: dict[AdminRole, frozenset[Capability]] = {
    AdminRole.EDITOR: frozenset({
        Capability.EDIT_STORY,
        Capability.MANAGE_CATEGORIES,
    }),
    AdminRole.APPROVER: frozenset({
        Capability.PUBLISH_STORY,
        Capability.REVIEW_SUBMISSIONS,
    }),
    AdminRole.ADMIN: frozenset(Capability),
}


def capabilities_for(role: AdminRole | None) -> frozenset[Capability]:
    """Return the capability set for *role*; no role means no capabilities."""
    if role is None:
        return frozenset()
    return _ROLE_CAPABILITIES[AdminRole(role)]


def can(role: AdminRole | None, capability: Capability) -> bool:
    return capability in capabilities_for(role)


def requires(capability: Capability) -> Callable[[F], F]:
    """Gate a controller command on *capability*.

    The decorated method's owner must expose ``role`` and a ``_denied``
    method producing the declined result.  Calls without the capability
    never reach the command body.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
            if not can(self.role, capability):
                logger.info("Denied %s for role %s", func.__name__, self.role)
                return self._denied(capability)
            return func(self, *args, **kwargs)

        wrapper.required_capability = capability  # type: ignore[attr-defined]
        return wrapper  # type: ignore[return-value]

    return decorator

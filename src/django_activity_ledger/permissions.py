"""Permission gate for activity reports.

Pure checks, run before any validation or state check. Only an explicit
``True`` from the access provider counts as a grant: None, falsy values,
non-bool truthy values and provider errors all resolve to Forbidden.
There is no superuser shortcut.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Optional

from django_activity_ledger import conf

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthorizationResult:
    """Outcome of the permission gate.

    Attributes:
        allowed: True only when every check passed
        reason: Stable reason code when forbidden
    """
    allowed: bool
    reason: str = ""

    @classmethod
    def allow(cls) -> "AuthorizationResult":
        return cls(allowed=True)

    @classmethod
    def forbid(cls, reason: str) -> "AuthorizationResult":
        return cls(allowed=False, reason=reason)


FORBIDDEN_MESSAGES = {
    "missing_actor": "Authentication is required",
    "not_owner": "Only the report owner can perform this action",
    "no_eligible_role": "You do not hold a role that allows managing activity reports",
    "access_context_unavailable": "Access could not be verified",
}


class AccessContextProvider(ABC):
    """Answers access questions about an actor's business contexts.

    Implementations must be side-effect free.
    """

    @abstractmethod
    def has_eligible_role(self, actor, roles: Iterable[str]) -> bool:
        """True if actor holds one of ``roles`` in some business context."""

    @abstractmethod
    def can_access_work_item(self, actor, work_item) -> bool:
        """True if the work item runs under a context the actor belongs to."""


class MembershipAccessProvider(AccessContextProvider):
    """Default provider backed by ContextMembership and WorkItemContext rows."""

    def has_eligible_role(self, actor, roles: Iterable[str]) -> bool:
        from django_activity_ledger.models import ContextMembership

        return ContextMembership.objects.filter(
            user_id=actor.pk,
            role__in=list(roles),
        ).exists()

    def can_access_work_item(self, actor, work_item) -> bool:
        from django_activity_ledger.models import ContextMembership, WorkItemContext

        context_ids = ContextMembership.objects.filter(user_id=actor.pk).values("context_id")
        return WorkItemContext.objects.filter(
            work_item_id=work_item.pk,
            context_id__in=context_ids,
        ).exists()


def _is_authenticated(actor) -> bool:
    if actor is None or getattr(actor, "pk", None) is None:
        return False
    return getattr(actor, "is_authenticated", False) is True


def _ask(provider, question: str, *args) -> bool:
    """Call a provider method; anything but a literal True is a refusal."""
    try:
        answer = getattr(provider, question)(*args)
    except Exception:
        logger.exception("Access context provider failed on %s", question)
        return False
    return answer is True


def _eligible(actor, provider) -> Optional[AuthorizationResult]:
    try:
        provider = provider or conf.get_access_provider()
    except Exception:
        logger.exception("Access context provider could not be loaded")
        return AuthorizationResult.forbid("access_context_unavailable")
    if not _ask(provider, "has_eligible_role", actor, conf.get_eligible_roles()):
        return AuthorizationResult.forbid("no_eligible_role")
    return None


def authorize_creation(actor, *, provider: Optional[AccessContextProvider] = None) -> AuthorizationResult:
    """
    Check that actor may create activity reports.

    Args:
        actor: The acting user
        provider: Access provider (defaults to ACTIVITY_LEDGER_ACCESS_PROVIDER)

    Returns:
        AuthorizationResult
    """
    if not _is_authenticated(actor):
        return AuthorizationResult.forbid("missing_actor")
    refused = _eligible(actor, provider)
    if refused is not None:
        return refused
    return AuthorizationResult.allow()


def authorize(actor, report, *, provider: Optional[AccessContextProvider] = None) -> AuthorizationResult:
    """
    Check that actor owns the report and still holds an eligible role.

    Args:
        actor: The acting user
        report: The ActivityReport being read or mutated
        provider: Access provider (defaults to ACTIVITY_LEDGER_ACCESS_PROVIDER)

    Returns:
        AuthorizationResult
    """
    if not _is_authenticated(actor):
        return AuthorizationResult.forbid("missing_actor")
    if report is None or report.owner_id is None or report.owner_id != actor.pk:
        return AuthorizationResult.forbid("not_owner")
    refused = _eligible(actor, provider)
    if refused is not None:
        return refused
    return AuthorizationResult.allow()


def can_access_work_item(actor, work_item, *, provider: Optional[AccessContextProvider] = None) -> bool:
    """True only if the provider explicitly grants access to the work item."""
    if not _is_authenticated(actor) or work_item is None:
        return False
    try:
        provider = provider or conf.get_access_provider()
    except Exception:
        logger.exception("Access context provider could not be loaded")
        return False
    return _ask(provider, "can_access_work_item", actor, work_item)


def forbidden_message(authorization: AuthorizationResult) -> str:
    return FORBIDDEN_MESSAGES.get(authorization.reason, "Forbidden")

# accounts/authz.py
"""
Authorization utilities.

Provides:
- ActorContext: Immutable context for the current request
- resolve_actor: Extract actor context from request
- require: Check permissions and raise if not granted

Permissions are checked:
1. OWNER role: implicit allow
2. Every other role: explicit grants only (role defaults + manual)
"""

from dataclasses import dataclass
from typing import FrozenSet

from django.core.exceptions import PermissionDenied
from rest_framework.exceptions import NotAuthenticated

from accounts.models import UserAccess


@dataclass(frozen=True)
class ActorContext:
    """
    Immutable context for the current actor.

    Passed to commands and policies so they know who performs an action.

    Attributes:
        user: The authenticated user
        access: The user's role/grant record
        perms: Set of explicit permission codes the user has
    """
    user: object  # User model
    access: UserAccess
    perms: FrozenSet[str]

    def has(self, code: str) -> bool:
        if not self.access.is_active:
            return False
        if self.access.role == UserAccess.Role.OWNER:
            return True
        return code in self.perms

    @property
    def role(self) -> str:
        return self.access.role

    @property
    def is_owner(self) -> bool:
        return self.access.role == UserAccess.Role.OWNER


def actor_for_user(user) -> ActorContext:
    """
    Build an ActorContext for a user, loading grants fresh from the database.

    Raises:
        PermissionDenied: If the user has no active access record
    """
    try:
        access = UserAccess.objects.prefetch_related("permissions").get(
            user=user,
            is_active=True,
        )
    except UserAccess.DoesNotExist:
        raise PermissionDenied("You do not have access to the ledger.")

    perms = frozenset(access.permissions.values_list("code", flat=True))
    return ActorContext(user=user, access=access, perms=perms)


def resolve_actor(request) -> ActorContext:
    """
    Extract ActorContext from the current request.

    Grants are looked up on every request so permission changes take
    effect immediately.

    Raises:
        NotAuthenticated: If user is not authenticated
        PermissionDenied: If user has no active access record
    """
    user = getattr(request, "user", None)

    if not user or not user.is_authenticated:
        raise NotAuthenticated("Authentication required.")

    return actor_for_user(user)


def require(actor: ActorContext, code: str) -> None:
    """
    Require that the actor has a specific permission.

    Raises:
        PermissionDenied: If permission is not granted

    Example:
        require(actor, "accounting.transactions.confirm")
    """
    if not actor.has(code):
        raise PermissionDenied(f"Permission denied: {code}")

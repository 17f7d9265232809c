# accounts/permissions.py
from __future__ import annotations

from django.db import transaction

from accounts.models import AccessPermission, UserAccess
from accounts.permission_defaults import ROLE_DEFAULTS, all_permission_codes


def _perm_defaults(code: str) -> dict:
    return {
        "name": code,
        "module": code.split(".")[1] if code.count(".") >= 2 else code.split(".")[0],
        "description": "",
    }


def ensure_permissions(codes) -> list[AccessPermission]:
    """Make sure AccessPermission rows exist for every code; return them."""
    codes = set(codes)
    existing = set(AccessPermission.objects.filter(code__in=codes).values_list("code", flat=True))
    missing = sorted(codes - existing)
    if missing:
        AccessPermission.objects.bulk_create(
            [AccessPermission(code=c, **_perm_defaults(c)) for c in missing],
            ignore_conflicts=True,
        )
    return list(AccessPermission.objects.filter(code__in=codes))


@transaction.atomic
def grant_role_defaults(access: UserAccess, overwrite: bool = False) -> int:
    """
    Grant default permissions for access.role.

    - Idempotent by default: only grants missing codes.
    - If overwrite=True: first removes existing grants then grants defaults.
    Returns number of permissions newly granted.
    """
    if overwrite:
        access.permissions.clear()

    perms = ensure_permissions(ROLE_DEFAULTS.get(access.role, set()))
    already = set(access.permissions.values_list("code", flat=True))
    to_grant = [p for p in perms if p.code not in already]
    if to_grant:
        access.permissions.add(*to_grant)
    return len(to_grant)


def seed_all_permissions() -> int:
    """Create every known permission code. Returns the number of codes."""
    codes = all_permission_codes()
    ensure_permissions(codes)
    return len(codes)

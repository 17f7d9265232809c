#accounts/tests/test_permissions_defaults.py

from io import StringIO

from django.contrib.auth import get_user_model
from django.core.exceptions import PermissionDenied
from django.core.management import call_command
from django.test import TestCase

from accounts.authz import actor_for_user
from accounts.models import AccessPermission, UserAccess
from accounts.permission_defaults import ROLE_DEFAULTS, all_permission_codes
from accounts.permissions import grant_role_defaults


User = get_user_model()


class TestPermissionDefaults(TestCase):
    def setUp(self):
        self.owner = User.objects.create_user(email="o@test.com", password="pass12345")
        self.accountant = User.objects.create_user(email="a@test.com", password="pass12345")
        self.viewer = User.objects.create_user(email="v@test.com", password="pass12345")

        self.owner_a = UserAccess.objects.create(user=self.owner, role="OWNER")
        self.accountant_a = UserAccess.objects.create(user=self.accountant, role="ACCOUNTANT")
        self.viewer_a = UserAccess.objects.create(user=self.viewer, role="VIEWER")

        for access in (self.owner_a, self.accountant_a, self.viewer_a):
            grant_role_defaults(access)

    def test_viewer_cannot_create_transactions(self):
        actor = actor_for_user(self.viewer)
        self.assertTrue(actor.has("accounting.transactions.view"))
        self.assertFalse(actor.has("accounting.transactions.create"))

    def test_owner_is_allowed_everything(self):
        actor = actor_for_user(self.owner)
        self.assertTrue(actor.is_owner)
        self.assertTrue(actor.has("accounting.projections.manage"))
        self.assertTrue(actor.has("not.a.real.code"))

    def test_accountant_confirms_but_cannot_cancel(self):
        actor = actor_for_user(self.accountant)
        self.assertTrue(actor.has("accounting.transactions.confirm"))
        self.assertFalse(actor.has("accounting.transactions.cancel"))

    def test_revocation_actually_blocks(self):
        perm = AccessPermission.objects.get(code="accounting.transactions.confirm")
        self.accountant_a.permissions.remove(perm)

        actor = actor_for_user(self.accountant)

        self.assertFalse(actor.has("accounting.transactions.confirm"))

    def test_inactive_access_is_denied(self):
        self.viewer_a.is_active = False
        self.viewer_a.save()

        with self.assertRaises(PermissionDenied):
            actor_for_user(self.viewer)

    def test_grant_is_idempotent(self):
        self.assertEqual(grant_role_defaults(self.accountant_a), 0)
        self.assertEqual(
            set(self.accountant_a.permissions.values_list("code", flat=True)),
            ROLE_DEFAULTS["ACCOUNTANT"],
        )

    def test_overwrite_resets_to_role_defaults(self):
        extra = AccessPermission.objects.get(code="accounting.transactions.cancel")
        self.viewer_a.permissions.add(extra)

        grant_role_defaults(self.viewer_a, overwrite=True)

        codes = set(self.viewer_a.permissions.values_list("code", flat=True))
        self.assertEqual(codes, ROLE_DEFAULTS["VIEWER"])


class TestSeedPermissions(TestCase):
    def test_command_creates_every_code(self):
        out = StringIO()

        call_command("seed_permissions", stdout=out)

        self.assertEqual(
            set(AccessPermission.objects.values_list("code", flat=True)),
            all_permission_codes(),
        )
        self.assertIn("permission codes present", out.getvalue())

    def test_module_is_derived_from_code(self):
        call_command("seed_permissions", stdout=StringIO())

        perm = AccessPermission.objects.get(code="accounting.cash.view")
        self.assertEqual(perm.module, "cash")

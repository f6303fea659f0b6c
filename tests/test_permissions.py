"""Tests for the permission gate and the default access provider."""
from unittest import mock

import pytest
from django.contrib.auth.models import AnonymousUser
from django.test import override_settings

from django_activity_ledger.models import WorkItemContext
from django_activity_ledger.permissions import (
    AccessContextProvider,
    MembershipAccessProvider,
    authorize,
    authorize_creation,
    can_access_work_item,
)


class StubProvider(AccessContextProvider):
    """Provider returning fixed answers."""

    def __init__(self, role=True, work_item=True):
        self.role = role
        self.work_item = work_item

    def has_eligible_role(self, actor, roles):
        return self.role

    def can_access_work_item(self, actor, work_item):
        return self.work_item


class RaisingProvider(AccessContextProvider):

    def has_eligible_role(self, actor, roles):
        raise RuntimeError("directory unavailable")

    def can_access_work_item(self, actor, work_item):
        raise RuntimeError("directory unavailable")


@pytest.mark.django_db
class TestAuthorize:

    def test_owner_with_eligible_role_is_allowed(self, user, report):
        assert authorize(user, report).allowed

    def test_missing_actor_is_forbidden(self, report):
        result = authorize(None, report)
        assert not result.allowed
        assert result.reason == "missing_actor"

    def test_anonymous_actor_is_forbidden(self, report):
        assert not authorize(AnonymousUser(), report).allowed

    def test_non_owner_is_forbidden(self, other_user, report):
        result = authorize(other_user, report)
        assert not result.allowed
        assert result.reason == "not_owner"

    def test_owner_without_eligible_role_is_forbidden(self, user, report):
        user.ledger_memberships.update(role="client")
        result = authorize(user, report)
        assert not result.allowed
        assert result.reason == "no_eligible_role"

    @pytest.mark.parametrize("answer", [None, False, 1, "yes", object()])
    def test_only_literal_true_grants(self, user, report, answer):
        assert not authorize(user, report, provider=StubProvider(role=answer)).allowed

    def test_provider_error_is_forbidden(self, user, report):
        assert not authorize(user, report, provider=RaisingProvider()).allowed

    def test_unloadable_provider_is_forbidden(self, user, report):
        with mock.patch(
            "django_activity_ledger.permissions.conf.get_access_provider",
            side_effect=RuntimeError("boom"),
        ):
            result = authorize(user, report)
        assert not result.allowed
        assert result.reason == "access_context_unavailable"

    @override_settings(ACTIVITY_LEDGER_ELIGIBLE_ROLES=("independent", "client"))
    def test_eligible_roles_are_configurable(self, client_user, report):
        report.owner = client_user
        report.save()
        assert authorize(client_user, report).allowed


@pytest.mark.django_db
class TestAuthorizeCreation:

    def test_independent_can_create(self, user):
        assert authorize_creation(user).allowed

    def test_client_cannot_create(self, client_user):
        assert not authorize_creation(client_user).allowed

    def test_user_without_membership_cannot_create(self, django_user_model):
        loner = django_user_model.objects.create_user(username="loner", password="x")
        assert not authorize_creation(loner).allowed

    def test_none_cannot_create(self):
        assert not authorize_creation(None).allowed


@pytest.mark.django_db
class TestWorkItemAccess:

    def test_work_item_in_member_context(self, user, work_item_a):
        assert can_access_work_item(user, work_item_a)

    def test_work_item_in_foreign_context(self, user, foreign_work_item):
        assert not can_access_work_item(user, foreign_work_item)

    def test_work_item_without_context(self, user, work_item_a):
        WorkItemContext.objects.filter(work_item=work_item_a).delete()
        assert not can_access_work_item(user, work_item_a)

    def test_client_member_can_access(self, client_user, work_item_a):
        assert MembershipAccessProvider().can_access_work_item(client_user, work_item_a)

    def test_non_bool_answer_is_refused(self, user, work_item_a):
        assert not can_access_work_item(user, work_item_a, provider=StubProvider(work_item="yes"))

    def test_provider_error_is_refused(self, user, work_item_a):
        assert not can_access_work_item(user, work_item_a, provider=RaisingProvider())

"""Unit tests for auth/store.py -- account and deployment persistence.

Covers:
- create_user() stores only username/password; policy columns keep defaults
- UNIQUE(username) enforced by the schema, not only by callers
- count_users() and lookups by username / id
- update_user() converts enums, rejects immutable and unknown columns
- find_or_create_deployment() keeps a single row owned by the first caller
- update_deployment() whitelist of keys
- claim_owner_slot() succeeds exactly once
"""

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import Rank, User, WhitelistStatus
from auth.store import UserStore


def _user(name: str = "dispatcher") -> User:
    return User(username=name, hashed_password="$2b$04$placeholderplaceholderplacehold")


class TestUsers:
    def test_empty_store_counts_zero(self, store: UserStore) -> None:
        assert store.count_users() == 0

    def test_create_and_lookup(self, store: UserStore) -> None:
        uid = store.create_user(_user())
        by_name = store.get_by_username("dispatcher")
        by_id = store.get_by_id(uid)
        assert by_name is not None and by_id is not None
        assert by_name.id == by_id.id == uid
        assert by_name.created_at
        assert store.count_users() == 1

    def test_create_ignores_policy_fields(self, store: UserStore) -> None:
        """Only username and password are written at creation."""
        user = _user()
        user.rank = Rank.OWNER
        user.is_leo = True
        uid = store.create_user(user)
        stored = store.get_by_id(uid)
        assert stored.rank is Rank.USER
        assert stored.whitelist_status is WhitelistStatus.ACCEPTED
        assert stored.is_leo is False
        assert stored.banned is False
        assert stored.temp_password is None

    def test_duplicate_username_violates_constraint(self, store: UserStore) -> None:
        store.create_user(_user("unit-1"))
        with pytest.raises(IntegrityError):
            store.create_user(_user("unit-1"))
        assert store.count_users() == 1

    def test_username_lookup_is_case_sensitive(self, store: UserStore) -> None:
        store.create_user(_user("Medic"))
        assert store.get_by_username("medic") is None

    def test_missing_user_returns_none(self, store: UserStore) -> None:
        assert store.get_by_username("ghost") is None
        assert store.get_by_id(12345) is None

    def test_update_user_applies_all_fields(self, store: UserStore) -> None:
        uid = store.create_user(_user())
        updated = store.update_user(
            uid,
            rank=Rank.OWNER,
            whitelist_status=WhitelistStatus.PENDING,
            is_dispatch=True,
            is_tow=True,
            banned=True,
        )
        assert updated is True
        user = store.get_by_id(uid)
        assert user.rank is Rank.OWNER
        assert user.whitelist_status is WhitelistStatus.PENDING
        assert user.is_dispatch is True
        assert user.is_tow is True
        assert user.banned is True

    def test_update_missing_user_returns_false(self, store: UserStore) -> None:
        assert store.update_user(999, banned=True) is False

    @pytest.mark.parametrize("field", ["username", "id", "created_at", "role"])
    def test_update_rejects_immutable_or_unknown(self, store: UserStore, field: str) -> None:
        uid = store.create_user(_user())
        with pytest.raises(ValueError):
            store.update_user(uid, **{field: "x"})


class TestDeployment:
    def test_created_on_first_call(self, store: UserStore) -> None:
        assert store.get_deployment() is None
        deployment = store.find_or_create_deployment(owner_id=1)
        assert deployment.owner_id == 1
        assert deployment.whitelisted is False
        assert deployment.tow_whitelisted is False
        assert deployment.name == "My CAD"

    def test_existing_deployment_keeps_first_owner(self, store: UserStore) -> None:
        store.find_or_create_deployment(owner_id=1)
        again = store.find_or_create_deployment(owner_id=2)
        assert again.owner_id == 1
        assert again.id == 1

    def test_update_flags(self, store: UserStore) -> None:
        store.find_or_create_deployment(owner_id=1)
        assert store.update_deployment(whitelisted=True, tow_whitelisted=True, name="County CAD")
        deployment = store.get_deployment()
        assert deployment.whitelisted is True
        assert deployment.tow_whitelisted is True
        assert deployment.name == "County CAD"

    def test_update_before_creation_returns_false(self, store: UserStore) -> None:
        assert store.update_deployment(whitelisted=True) is False

    def test_update_rejects_unknown_keys(self, store: UserStore) -> None:
        store.find_or_create_deployment(owner_id=1)
        with pytest.raises(ValueError):
            store.update_deployment(owner_id=5)


class TestOwnerSlot:
    def test_claimed_once(self, store: UserStore) -> None:
        assert store.claim_owner_slot(1) is True
        assert store.claim_owner_slot(2) is False
        assert store.claim_owner_slot(1) is False


def test_ping(store: UserStore) -> None:
    assert store.ping() is True

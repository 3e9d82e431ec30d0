"""
Unit tests for AccountStore and the profile merge.
"""

import threading

import pytest

from multiauth.auth import Account, AccountSeed, Profile, merge_profile
from multiauth.auth.accounts import (
    AccountNotFoundError,
    DuplicateAccountError,
    RepositoryError,
    RepositoryTimeout,
)


def password_seed(email="a@x.com", phone=None) -> AccountSeed:
    return AccountSeed(
        auth_method="password",
        email=email,
        phone=phone,
        first_name="A",
        last_name="B",
        password_hash="$2b$04$placeholderplaceholderplaceholderplaceholderpla"
    )


class TestAccountStore:
    """Tests for AccountStore class."""

    @pytest.mark.unit
    def test_create_account(self, account_store):
        account = account_store.create(password_seed(email="  A@X.com "))

        assert account.account_id
        assert account.email == "a@x.com"
        assert account.auth_method == "password"
        assert account.is_verified is True
        assert account.last_login is not None

    @pytest.mark.unit
    def test_find_by_email_is_case_insensitive(self, account_store):
        created = account_store.create(password_seed())

        found = account_store.find_by_email("A@X.COM")
        assert found is not None
        assert found.account_id == created.account_id

    @pytest.mark.unit
    def test_find_by_phone_and_id(self, account_store):
        created = account_store.create(AccountSeed(auth_method="otp", phone="+1 555 123 4567"))

        assert created.email is None
        assert account_store.find_by_phone("+15551234567").account_id == created.account_id
        assert account_store.find_by_id(created.account_id).phone == "+15551234567"

    @pytest.mark.unit
    def test_find_missing_returns_none(self, account_store):
        assert account_store.find_by_email("nobody@x.com") is None
        assert account_store.find_by_phone("+15550000000") is None
        assert account_store.find_by_id("missing") is None
        assert account_store.find_by_email("not an email") is None

    @pytest.mark.unit
    def test_duplicate_email_rejected(self, account_store):
        account_store.create(password_seed())

        with pytest.raises(DuplicateAccountError) as exc_info:
            account_store.create(AccountSeed(auth_method="magic", email="A@x.com"))
        assert exc_info.value.field_name == "email"

    @pytest.mark.unit
    def test_duplicate_phone_rejected(self, account_store):
        account_store.create(AccountSeed(auth_method="otp", phone="+15551234567"))

        with pytest.raises(DuplicateAccountError) as exc_info:
            account_store.create(password_seed(phone="+15551234567"))
        assert exc_info.value.field_name == "phone"

    @pytest.mark.unit
    def test_phone_only_accounts_do_not_collide_on_missing_email(self, account_store):
        account_store.create(AccountSeed(auth_method="otp", phone="+15551234567"))
        account_store.create(AccountSeed(auth_method="otp", phone="+15557654321"))

        assert len(account_store.list_accounts()) == 2

    @pytest.mark.unit
    def test_seed_without_identifier_rejected(self, account_store):
        with pytest.raises(ValueError):
            account_store.create(AccountSeed(auth_method="magic"))

    @pytest.mark.unit
    def test_password_hash_required_for_password_accounts(self, account_store):
        with pytest.raises(ValueError, match="Password hash"):
            account_store.create(AccountSeed(auth_method="password", email="a@x.com"))

        with pytest.raises(ValueError, match="Password hash"):
            account_store.create(AccountSeed(auth_method="magic", email="b@x.com", password_hash="x"))

    @pytest.mark.unit
    def test_update_account(self, account_store):
        account = account_store.create(password_seed())
        account.first_name = "Ada"
        account_store.update(account)

        assert account_store.find_by_id(account.account_id).first_name == "Ada"

    @pytest.mark.unit
    def test_update_missing_account(self, account_store):
        ghost = Account(account_id="ghost", auth_method="magic", email="ghost@x.com")
        with pytest.raises(AccountNotFoundError):
            account_store.update(ghost)

    @pytest.mark.unit
    def test_update_cannot_change_auth_method(self, account_store):
        account = account_store.create(AccountSeed(auth_method="magic", email="m@x.com"))
        account.auth_method = "biometric"

        with pytest.raises(ValueError, match="cannot change"):
            account_store.update(account)

    @pytest.mark.unit
    def test_update_to_taken_phone_rejected(self, account_store):
        account_store.create(AccountSeed(auth_method="otp", phone="+15551234567"))
        other = account_store.create(AccountSeed(auth_method="magic", email="m@x.com"))
        other.phone = "+15551234567"

        with pytest.raises(DuplicateAccountError):
            account_store.update(other)

    @pytest.mark.unit
    def test_round_trip_keeps_profile_and_provider_ids(self, account_store):
        account = account_store.create(AccountSeed(
            auth_method="google",
            email="g@x.com",
            provider_ids={"google": "g-1"},
            profile=Profile(avatar="http://img/a.png")
        ))

        found = account_store.find_by_id(account.account_id)
        assert found.provider_ids == {"google": "g-1"}
        assert found.profile.avatar == "http://img/a.png"

    @pytest.mark.unit
    def test_public_dict_has_no_secrets(self, account_store):
        account = account_store.create(password_seed())
        public = account.to_public_dict()

        assert "password_hash" not in public
        assert "biometric_hash" not in public
        assert "provider_ids" not in public
        assert public["email"] == "a@x.com"

    @pytest.mark.unit
    def test_lock_timeout(self, account_store):
        account_store._lock.acquire()
        try:
            with pytest.raises(RepositoryTimeout):
                account_store.find_by_email("a@x.com", timeout=0.01)
        finally:
            account_store._lock.release()

    @pytest.mark.unit
    def test_corrupt_file(self, account_store, temp_user_file):
        temp_user_file.write_text("{not json")
        with pytest.raises(RepositoryError):
            account_store.find_by_email("a@x.com")

    @pytest.mark.unit
    def test_concurrent_creates_single_winner(self, account_store):
        winners, losers = [], []

        def attempt():
            try:
                winners.append(account_store.create(password_seed()))
            except DuplicateAccountError:
                losers.append(True)

        threads = [threading.Thread(target=attempt) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(winners) == 1
        assert len(losers) == 7
        assert len(account_store.list_accounts()) == 1


class TestMergeProfile:

    @pytest.mark.unit
    def test_fills_only_empty_fields(self):
        existing = Profile(avatar=None, bio="hello")
        incoming = Profile(avatar="http://img/new.png", bio="overwrite?", location="Lisbon")

        merged = merge_profile(existing, incoming)

        assert merged.avatar == "http://img/new.png"
        assert merged.bio == "hello"
        assert merged.location == "Lisbon"

    @pytest.mark.unit
    def test_existing_avatar_kept(self):
        merged = merge_profile(Profile(avatar="old"), Profile(avatar="new"))
        assert merged.avatar == "old"

    @pytest.mark.unit
    def test_inputs_not_mutated(self):
        existing = Profile()
        merge_profile(existing, Profile(avatar="new"))
        assert existing.avatar is None

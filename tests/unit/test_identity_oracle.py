"""
Tests for the in-memory identity oracle and profile store used when Supabase is disabled.
"""
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime
from unittest.mock import Mock

import pytest

from src.domain.entities.profile import ProfileEntity
from src.domain.errors import OracleRejected, UpstreamFailure
from src.infrastructure.database import supabase_client
from src.infrastructure.database.repositories import profile_repository
from src.infrastructure.database.repositories.profile_repository import ProfileRepository
from src.infrastructure.database.supabase_client import ProviderIdentity, SupabaseIdentityOracle

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def oracle():
    return SupabaseIdentityOracle()


def blocked_while_locked(lock, action) -> bool:
    """Run ``action`` in a thread while ``lock`` is held; True if it had to wait."""
    done = threading.Event()

    def run():
        action()
        done.set()

    with lock:
        worker = threading.Thread(target=run)
        worker.start()
        waited = not done.wait(0.2)
    worker.join(timeout=5)
    return waited and done.is_set()


class TestProviderTokens:
    def test_minted_token_verifies_to_its_identity(self, oracle):
        token = oracle.mint_provider_token("github", email="a@b.com", external_id="7")
        assert oracle.verify_provider_token("github", token) == ProviderIdentity(email="a@b.com", external_id="7")

    def test_token_from_another_provider_is_rejected(self, oracle):
        token = oracle.mint_provider_token("facebook", email="a@b.com")
        with pytest.raises(OracleRejected, match="not issued by google"):
            oracle.verify_provider_token("google", token)

    @pytest.mark.parametrize("token", ["", "never-issued"])
    def test_unknown_or_empty_token_is_rejected(self, oracle, token):
        with pytest.raises(OracleRejected):
            oracle.verify_provider_token("google", token)

    def test_only_the_in_memory_oracle_mints_tokens(self, oracle):
        oracle.disabled = False
        oracle._client = Mock()
        oracle._admin = Mock()
        with pytest.raises(UpstreamFailure):
            oracle.mint_provider_token("google", email="a@b.com")
        assert supabase_client._MEM_PROVIDER_TOKENS == {}


def test_update_email_can_restore_verified_state(oracle):
    account = oracle.create_account("a@b.com", email_verified=True)

    oracle.update_email(account.id, "New@B.com")
    assert oracle.get_account(account.id).email_verified is False

    oracle.update_email(account.id, "a@b.com", verified=True)
    restored = oracle.get_account(account.id)
    assert restored.email == "a@b.com"
    assert restored.email_verified is True


class TestSharedState:
    def test_oracle_writes_wait_for_the_store_lock(self, oracle):
        assert blocked_while_locked(supabase_client._MEM_LOCK, lambda: oracle.create_account("a@b.com"))
        assert oracle.find_by_email("a@b.com") is not None

    def test_profile_writes_wait_for_the_store_lock(self):
        repo = ProfileRepository(None)
        entity = ProfileEntity(id="u1", email="a@b.com", providers=("manual",), created_at=NOW, updated_at=NOW)
        assert blocked_while_locked(profile_repository._MEM_LOCK, lambda: repo.create(entity))
        assert repo.get("u1") == entity

    def test_concurrent_sign_ups_and_lookups(self, oracle):
        def sign_up(n: int) -> str:
            account = oracle.create_account(f"user{n}@b.com", "Abcdef1!")
            oracle.issue_session(account.id)
            assert oracle.find_by_email(f"user{n}@b.com").id == account.id
            assert oracle.verify_password(f"user{n}@b.com", "Abcdef1!") == account.id
            if n % 2:
                oracle.delete_account(account.id)
            return account.id

        with ThreadPoolExecutor(max_workers=8) as pool:
            ids = list(pool.map(sign_up, range(200)))

        assert len(set(ids)) == 200
        assert len(supabase_client._MEM_ACCOUNTS) == 100
        assert {uid for uid, _ in supabase_client._MEM_SESSIONS.values()} == set(ids[::2])

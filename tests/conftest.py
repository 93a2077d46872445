import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Ensure project root is on sys.path so 'src' is importable during tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ["SUPABASE_DISABLED"] = "1"
os.environ["ENV"] = "test"
os.environ.pop("RATE_LIMIT_BYPASS", None)
os.environ.pop("USE_LOCAL_DB", None)

STRONG_PASSWORD = "Abcdef1!"


@pytest.fixture(scope="session")
def client() -> TestClient:
    # lazy import after env configured
    from src.main import create_app

    app = create_app()
    return TestClient(app)


@pytest.fixture(autouse=True)
def clean_state():
    """Empty the in-memory oracle, stores and login limiter around each test."""
    from src.infrastructure.api.rate_limiter import get_login_limiter
    from src.infrastructure.database import supabase_client
    from src.infrastructure.database.repositories import meeting_repository, profile_repository

    def clear():
        supabase_client._MEM_ACCOUNTS.clear()
        supabase_client._MEM_SESSIONS.clear()
        supabase_client._MEM_PROVIDER_TOKENS.clear()
        profile_repository._MEM_PROFILES.clear()
        meeting_repository._MEM_MEETINGS.clear()
        get_login_limiter().reset()

    clear()
    yield
    clear()


@pytest.fixture()
def register(client):
    """Register a user through the API and return ``(uid, auth_header)``."""

    def _register(email: str, password: str = STRONG_PASSWORD, **extra) -> tuple[str, dict[str, str]]:
        r = client.post("/api/auth/register", json={"email": email, "password": password, **extra})
        assert r.status_code == 201, r.text
        data = r.json()
        return data["user"]["uid"], {"Authorization": f"Bearer {data['token']}"}

    return _register


@pytest.fixture()
def auth_header(register) -> dict[str, str]:
    _, header = register("owner@example.com")
    return header


@pytest.fixture()
def provider_token():
    """Mint a token the in-memory oracle accepts as a provider sign-in."""
    from src.infrastructure.api.dependencies import get_identity_oracle

    def _mint(provider: str, email: str | None = None, uid: str | None = None) -> str:
        return get_identity_oracle().mint_provider_token(provider, email=email, external_id=uid)

    return _mint

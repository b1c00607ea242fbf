"""
Shared fixtures: settings, a throwaway SQLite credential database and a
fixed clock.
"""

from datetime import datetime, timezone

import pytest
import pytest_asyncio
from cryptography.fernet import Fernet

from config.settings import Settings
from connectors.credential_store import CredentialStore
from connectors.encryption import TokenCipher
from database.session import build_engine, build_session_factory, init_models
from fakes import FakeClock


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        api_key="test-key",
        oauth_state_secret="state-secret",
        token_encryption_key=Fernet.generate_key().decode(),
        google_client_id="google-client",
        google_client_secret="google-secret",
        plaid_client_id="plaid-client",
        plaid_secret="plaid-secret",
        app_url="http://app.test",
        oauth_redirect_base="http://api.test",
        database_url="sqlite+aiosqlite://",
        provider_timeout_seconds=5.0,
    )


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'credentials.db'}")
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def cipher():
    return TokenCipher(Fernet.generate_key().decode())


@pytest.fixture
def store(session_factory, cipher):
    return CredentialStore(session_factory, cipher)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))

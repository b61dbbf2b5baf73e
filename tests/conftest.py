"""
Pytest configuration and shared fixtures for testing.
Provides test settings, storage backends, conversation store and fake
reply providers. Nothing here touches the network.
"""
import pytest
import os
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional

# Set testing environment before importing the application
os.environ["ENVIRONMENT"] = "testing"
os.environ["DATABASE_URL"] = ""
os.environ["ENABLE_TELEMETRY"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["DEEPSEEK_API_KEY"] = ""
os.environ["OPENAI_API_KEY"] = ""

from guardian.config import Settings
from guardian.config.provider_settings import ProviderSettings
from guardian.conversation import InMemoryConversationStore
from guardian.database import ConnectionHealth, create_database_engine
from guardian.providers import ProviderReply, ReplyProvider
from guardian.storage import JSONFileBackend, SQLBackend, StorageGateway
from guardian.utils.resilience import reset_all_circuit_breakers


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without external services")
    config.addinivalue_line("markers", "integration: tests exercising the assembled application")


# ===========================
# Fake Providers
# ===========================

class FakeProvider(ReplyProvider):
    """
    Scripted reply provider.

    Replies with ``reply`` or raises ``error``; records every call.
    """

    def __init__(
        self,
        name: str,
        reply: str = "Hello from the fake provider",
        error: Optional[BaseException] = None,
        configured: bool = True,
        chunks: Optional[List[str]] = None,
        stream_error: Optional[BaseException] = None
    ):
        self.name = name
        self.reply = reply
        self.error = error
        self._configured = configured
        self.chunks = chunks
        self.stream_error = stream_error
        self.calls: List[Dict] = []

    @property
    def configured(self) -> bool:
        return self._configured

    @property
    def supports_streaming(self) -> bool:
        return self.chunks is not None

    async def generate(self, messages, use_reasoner: bool = False) -> ProviderReply:
        self.calls.append({"messages": messages, "use_reasoner": use_reasoner})
        if self.error is not None:
            raise self.error
        return ProviderReply(response=self.reply, source=self.name, model=f"{self.name}-model")

    async def stream(self, messages) -> AsyncIterator[str]:
        self.calls.append({"messages": messages, "stream": True})
        for chunk in self.chunks:
            yield chunk
        if self.stream_error is not None:
            raise self.stream_error


@pytest.fixture
def fake_provider_factory():
    """Build FakeProvider instances: fake_provider_factory("deepseek", reply="hi")."""
    return FakeProvider


# ===========================
# Settings Fixtures
# ===========================

@pytest.fixture(autouse=True)
def reset_breakers():
    """Circuit breakers are process-wide; every test starts closed."""
    reset_all_circuit_breakers()
    yield
    reset_all_circuit_breakers()


@pytest.fixture
def temp_dir(tmp_path) -> Path:
    return tmp_path


@pytest.fixture
def test_settings(temp_dir: Path) -> Settings:
    """
    Create test settings instance.
    JSON storage only, under a temporary directory.
    """
    return Settings(
        environment="testing",
        debug=True,
        database_url=None,
        data_dir=str(temp_dir / "data"),
        enable_telemetry=False,
        rate_limit_enabled=False,
        conversation_store_type="in_memory",
        storage_health_interval_seconds=3600
    )


@pytest.fixture
def provider_config() -> ProviderSettings:
    """Provider settings with no credentials, one attempt per tier and no web access."""
    return ProviderSettings(
        deepseek_api_key=None,
        openai_api_key=None,
        provider_max_retries=1,
        provider_timeout_seconds=5,
        web_search_enabled=False
    )


# ===========================
# Store Fixtures
# ===========================

@pytest.fixture
def conversation_store() -> InMemoryConversationStore:
    return InMemoryConversationStore(max_messages=20, max_keys=100)


@pytest.fixture
def json_backend(temp_dir: Path) -> JSONFileBackend:
    return JSONFileBackend(str(temp_dir / "data"))


@pytest.fixture
async def sql_backend():
    """
    Durable backend on in-memory SQLite.
    StaticPool keeps one connection, so the database survives between sessions.
    """
    health = ConnectionHealth()
    engine = create_database_engine("sqlite:///:memory:", echo=False, health=health)
    backend = SQLBackend(engine, health)
    assert await backend.initialize()
    yield backend
    await backend.close()


@pytest.fixture
def gateway(json_backend) -> StorageGateway:
    """Gateway with the JSON backend only."""
    return StorageGateway(fallback=json_backend)


@pytest.fixture
def durable_gateway(json_backend, sql_backend) -> StorageGateway:
    """Gateway with both backends, durable healthy."""
    return StorageGateway(fallback=json_backend, durable=sql_backend)


# ===========================
# Utility Fixtures
# ===========================

@pytest.fixture
def bus_booking_data() -> Dict:
    return {
        "type": "bus",
        "from": "Delhi",
        "to": "Mumbai",
        "date": "2099-01-15",
        "time": "10:00",
        "seatType": "standard",
        "passengers": [{"name": "Asha", "age": 34}]
    }


@pytest.fixture
def flight_booking_data() -> Dict:
    return {
        "type": "flight",
        "from": "Delhi",
        "to": "Bangalore",
        "departureDate": "2099-02-01",
        "class": "economy",
        "passengers": [{"name": "Ravi", "age": 40}, {"name": "Mira", "age": 8}]
    }

"""
Test configuration and fixtures.
Uses SQLite in-memory for fast tests. Mocks all external services.
"""
import pytest
import uuid
from unittest.mock import AsyncMock, patch
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.dialects.postgresql import JSONB

from safetalk.database import Base
import safetalk.models  # noqa: F401  (registers all tables on Base.metadata)
from safetalk.agents.conductor import Conductor
from safetalk.models.message import CATEGORY_DECISION_MAKING, CATEGORY_INFORMATIONAL
from safetalk.models.party import Party
from safetalk.schemas.transform import IncomingTransform, ModeratedReply, OutgoingOptions
from safetalk.schemas.webhook_payloads import InboundSms
from safetalk.services.content_transform import ContentTransform, is_hostile
from safetalk.services.record_store import SqlRecordStore
from safetalk.services.transport import MessageTransport
from safetalk.utils.errors import ContentTransformError, TransportError
from safetalk.utils.phone import is_valid_phone, normalize_phone

CLIENT_PHONE = "+15551234567"
COUNTERPART_PHONE = "+15557654321"
SERVICE_PHONE = "+15559990000"


# Register JSONB as JSON for SQLite compatibility in tests
@compiles(JSONB, "sqlite")
def _compile_jsonb_sqlite(type_, compiler, **kw):
    return "JSON"


@pytest.fixture
async def db():
    """In-memory SQLite database for tests."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture
def store(db):
    return SqlRecordStore(db)


class FakeTransport(MessageTransport):
    """Records every send. Set fail_for to a phone to make sends to it fail."""

    def __init__(self):
        self.sent = []
        self.fail_for = set()
        self._counter = 0

    async def send(self, to_address: str, body: str) -> str:
        if to_address in self.fail_for:
            raise TransportError("carrier rejected", error_code="30007")
        self._counter += 1
        self.sent.append((to_address, body))
        return f"SM_fake_{self._counter}"

    def normalize_address(self, raw: str) -> str:
        return normalize_phone(raw)

    def is_valid_address(self, canonical: str) -> bool:
        return is_valid_phone(canonical)

    def to(self, phone: str) -> list[str]:
        return [body for to_address, body in self.sent if to_address == phone]


class FakeTransform(ContentTransform):
    """Deterministic transform. Refuses hostile custom replies. fail=True raises."""

    def __init__(self):
        self.fail = False
        self.calls = []

    def _check(self, operation: str, text: str):
        self.calls.append((operation, text))
        if self.fail:
            raise ContentTransformError("model unavailable", operation=operation)

    async def process_incoming(self, text: str) -> IncomingTransform:
        self._check("process_incoming", text)
        return IncomingTransform(
            filtered_text="Please try to be on time for pickup.",
            category=CATEGORY_DECISION_MAKING,
            options=[
                "I'll make sure to be on time.",
                "Sorry about that, it won't happen again.",
                "Can we talk about a pickup time that works for both of us?",
            ],
        )

    async def generate_outgoing_options(self, text: str) -> OutgoingOptions:
        self._check("generate_outgoing_options", text)
        return OutgoingOptions(
            options=[
                "Could I pick him up early today?",
                "Hi, I'd like to pick him up early today if that works.",
                "Would an early pickup today be okay?",
            ],
            category=CATEGORY_INFORMATIONAL,
        )

    async def moderate_custom_reply(self, text: str) -> ModeratedReply:
        self._check("moderate_custom_reply", text)
        if is_hostile(text):
            return ModeratedReply(refused=True)
        return ModeratedReply(text=text.strip())


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def transform():
    return FakeTransform()


@pytest.fixture
def conductor(store, transport, transform):
    return Conductor(
        store=store,
        transport=transport,
        transform=transform,
        service_phone=SERVICE_PHONE,
        subscribe_url="https://subscribe.example.com",
        support_url="support.example.com",
    )


@pytest.fixture
async def party(store):
    """An active pairing with no billing record."""
    p = Party(
        own_phone=CLIENT_PHONE,
        counterpart_phone=COUNTERPART_PHONE,
        service_phone=SERVICE_PHONE,
        own_name="Alex",
        counterpart_name="Sam",
        is_active=True,
    )
    return await store.save_party(p)


@pytest.fixture
def make_sms():
    """Factory for a validated inbound SMS to the service number."""
    def _make(from_address: str, body: str, sid: str = None) -> InboundSms:
        return InboundSms(
            from_address=from_address,
            to_address=SERVICE_PHONE,
            body_text=body,
            external_message_id=sid or f"SM_in_{uuid.uuid4().hex[:12]}",
        )
    return _make


@pytest.fixture
def mock_sms():
    """Mock for async send_sms - prevents real Twilio calls in tests."""
    with patch("safetalk.services.sms.send_sms", new_callable=AsyncMock) as mock:
        mock.return_value = {
            "sid": "SM_test_123",
            "status": "sent",
            "provider": "twilio",
            "segments": 1,
            "cost_usd": 0.0079,
            "error": None,
            "error_code": None,
        }
        yield mock


@pytest.fixture
def mock_ai():
    """Mock for async generate_response - prevents real AI API calls in tests."""
    with patch("safetalk.services.ai.generate_response", new_callable=AsyncMock) as mock:
        mock.return_value = {
            "content": '{"refused": false, "text": "Test response"}',
            "provider": "anthropic",
            "model": "claude-haiku",
            "latency_ms": 500,
            "cost_usd": 0.001,
            "input_tokens": 100,
            "output_tokens": 50,
            "error": None,
        }
        yield mock


@pytest.fixture
def mock_redis():
    """Mock for async Redis - prevents real Redis calls in tests."""
    with patch("safetalk.utils.dedup.get_redis") as mock:
        redis_mock = AsyncMock()
        redis_mock.set = AsyncMock(return_value=True)
        redis_mock.ping = AsyncMock(return_value=True)
        mock.return_value = redis_mock
        yield redis_mock

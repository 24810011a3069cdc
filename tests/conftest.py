"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import os

# Mandatory secret key for settings validation
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "testing")

from decimal import Decimal
from functools import partial
from typing import Callable, Optional

import pytest

from application.dtos.webhooks import TransportResponse
from application.ports.secrets import SecretDecryptionError
from application.services.webhook_delivery_executor import WebhookDeliveryExecutor
from application.services.webhook_endpoint_service import WebhookEndpointService
from application.services.webhook_service import WebhookService
from application.utils.url_validator import WebhookUrlValidator
from core.config import WebhookSettings
from domain.payment.entity import PaymentSession, PaymentStatus, Refund, RefundStatus
from domain.user.entity import User
from domain.webhook.entity import EventType, WebhookEndpoint
from infrastructure.cache import SecretCache
from infrastructure.database import create_engine, create_session_factory, create_tables
from infrastructure.resilience.circuit_breaker import InMemoryCircuitBreaker
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork

ALL_EVENTS = [e.value for e in EventType]
MERCHANT = "0x" + "ab" * 20


class FakeOracle:
    """Confirmation depth per tx hash; unknown hashes report 0."""

    def __init__(self, confirmations: Optional[dict] = None):
        self.confirmations = dict(confirmations or {})
        self.calls: list[tuple[str, str]] = []

    async def get_confirmations(self, network: str, tx_hash: str) -> int:
        self.calls.append((network, tx_hash))
        return self.confirmations.get(tx_hash, 0)


class RecordingTransport:
    """Returns scripted responses (or raises scripted exceptions) and records every request."""

    def __init__(self, *responses):
        self._responses = list(responses) or [TransportResponse(status_code=200, reason="OK", text="ok")]
        self.requests: list[dict] = []

    async def post(self, url, *, content, headers, timeout):
        self.requests.append({"url": url, "content": content, "headers": dict(headers), "timeout": timeout})
        outcome = self._responses[0] if len(self._responses) == 1 else self._responses.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def aclose(self) -> None:
        return None


class CountingDecryptor:
    """Seals as `enc:<plaintext>`; decrypting anything without that prefix fails."""

    def __init__(self):
        self.calls = 0

    def encrypt(self, plaintext: str) -> str:
        return f"enc:{plaintext}"

    def decrypt(self, encrypted: str) -> str:
        self.calls += 1
        if not encrypted.startswith("enc:"):
            raise SecretDecryptionError("bad ciphertext")
        return encrypted[len("enc:"):]


class Seeder:
    def __init__(self, uow_factory):
        self._uow_factory = uow_factory

    async def user(self, email: str = "merchant@example.com") -> User:
        async with self._uow_factory() as uow:
            return await uow.user_repository.create(User(email=email))

    async def payment(
        self,
        owner_id: str,
        amount: str = "100",
        status: PaymentStatus = PaymentStatus.COMPLETED,
        network: str = "polygon",
    ) -> PaymentSession:
        async with self._uow_factory() as uow:
            return await uow.payment_repository.create(
                PaymentSession(
                    user_id=owner_id,
                    amount=Decimal(amount),
                    network=network,
                    merchant_address=MERCHANT,
                    status=status,
                )
            )

    async def refund(
        self,
        payment_id: str,
        amount: str,
        status: RefundStatus = RefundStatus.PROCESSING,
        tx_hash: Optional[str] = "0xrefund",
    ) -> Refund:
        async with self._uow_factory() as uow:
            return await uow.refund_repository.create(
                Refund(payment_session_id=payment_id, amount=Decimal(amount), status=status, tx_hash=tx_hash)
            )

    async def endpoint(
        self,
        owner_id: str,
        url: str = "https://hooks.example.com/gateway",
        secret: str = "enc:whsec_test",
        events: Optional[list] = None,
        enabled: bool = True,
    ) -> WebhookEndpoint:
        async with self._uow_factory() as uow:
            return await uow.webhook_endpoint_repository.create(
                WebhookEndpoint(
                    user_id=owner_id,
                    url=url,
                    secret=secret,
                    events=ALL_EVENTS if events is None else events,
                    enabled=enabled,
                )
            )


@pytest.fixture
async def engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'gateway.db'}", lock_timeout_seconds=30)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def uow_factory(engine):
    return partial(SQLAlchemyUnitOfWork, create_session_factory(engine))


@pytest.fixture
def seed(uow_factory) -> Seeder:
    return Seeder(uow_factory)


@pytest.fixture
def webhook_config() -> WebhookSettings:
    return WebhookSettings(allow_http=True)


@pytest.fixture
def make_executor(uow_factory, webhook_config) -> Callable[..., WebhookDeliveryExecutor]:
    def _make(
        transport=None,
        *,
        breaker=None,
        decryptor=None,
        secret_cache=None,
        url_validator=None,
        rng=lambda: 0.0,
    ) -> WebhookDeliveryExecutor:
        return WebhookDeliveryExecutor(
            uow_factory,
            transport=transport or RecordingTransport(),
            breaker=breaker or InMemoryCircuitBreaker(),
            secret_cache=secret_cache if secret_cache is not None else SecretCache(),
            decryptor=decryptor or CountingDecryptor(),
            url_validator=url_validator or WebhookUrlValidator(allow_http=True, resolve_dns=False),
            config=webhook_config,
            rng=rng,
            clock=lambda: 1_700_000_000,
        )

    return _make


@pytest.fixture
def webhook_service(uow_factory, webhook_config) -> WebhookService:
    return WebhookService(uow_factory, config=webhook_config)


@pytest.fixture
def secret_cache() -> SecretCache:
    return SecretCache()


@pytest.fixture
def endpoint_service(uow_factory, webhook_config, secret_cache) -> WebhookEndpointService:
    return WebhookEndpointService(
        uow_factory,
        encryptor=CountingDecryptor(),
        secret_cache=secret_cache,
        url_validator=WebhookUrlValidator(allow_http=True, resolve_dns=False),
        config=webhook_config,
    )

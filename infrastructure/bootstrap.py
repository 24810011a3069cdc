"""
应用装配：创建并持有进程级资源（密钥缓存、熔断器、HTTP 传输、确认数查询），
供 FastAPI lifespan 与 Celery 任务共用。资源在 aclose() 中统一释放。
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from application.ports.blockchain import ConfirmationOracle
from application.ports.secrets import SecretDecryptor, SecretEncryptor
from application.ports.webhooks import CircuitBreaker, WebhookTransport
from application.services.payment_link_service import PaymentLinkService
from application.services.refund_service import RefundService
from application.services.team_service import TeamService
from application.services.webhook_delivery_executor import WebhookDeliveryExecutor
from application.services.webhook_endpoint_service import WebhookEndpointService
from application.services.webhook_service import WebhookService
from application.utils.url_validator import WebhookUrlValidator
from core.config import settings
from core.logging_config import get_logger
from domain.common.unit_of_work import UnitOfWorkFactory
from infrastructure.cache import SecretCache, shutdown_redis_cache
from infrastructure.external.blockchain import JsonRpcConfirmationOracle
from infrastructure.external.secrets import AesGcmSecretCipher
from infrastructure.external.webhooks import HttpxWebhookTransport
from infrastructure.resilience.circuit_breaker import RedisCircuitBreaker, build_circuit_breaker
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


logger = get_logger(__name__)


@dataclass
class GatewayServices:
    secret_cache: SecretCache
    breaker: CircuitBreaker
    transport: WebhookTransport
    oracle: ConfirmationOracle
    executor: WebhookDeliveryExecutor
    webhook_service: WebhookService
    webhook_endpoint_service: WebhookEndpointService
    refund_service: RefundService
    payment_link_service: PaymentLinkService
    team_service: TeamService

    async def aclose(self) -> None:
        await self.transport.aclose()
        close_oracle = getattr(self.oracle, "close", None)
        if close_oracle is not None:
            await close_oracle()
        if isinstance(self.breaker, RedisCircuitBreaker):
            await shutdown_redis_cache()
        self.secret_cache.close()
        logger.info("gateway_services_closed")


async def build_services(
    uow_factory: UnitOfWorkFactory = SQLAlchemyUnitOfWork,
    *,
    transport: Optional[WebhookTransport] = None,
    oracle: Optional[ConfirmationOracle] = None,
    breaker: Optional[CircuitBreaker] = None,
    decryptor: Optional[SecretDecryptor] = None,
    encryptor: Optional[SecretEncryptor] = None,
    secret_cache: Optional[SecretCache] = None,
    url_validator: Optional[WebhookUrlValidator] = None,
) -> GatewayServices:
    """按配置装配服务；测试可逐项替换适配器"""
    webhook_cfg = settings.webhook
    secret_cache = secret_cache or SecretCache(
        ttl_seconds=webhook_cfg.secret_cache_ttl_seconds,
        max_entries=webhook_cfg.secret_cache_max_entries,
    )
    if breaker is None:
        breaker = await build_circuit_breaker(webhook_cfg, settings.redis.url)
    transport = transport or HttpxWebhookTransport()
    oracle = oracle or JsonRpcConfirmationOracle()
    cipher = AesGcmSecretCipher(webhook_cfg.encryption_key)
    decryptor = decryptor or cipher
    encryptor = encryptor or cipher

    executor = WebhookDeliveryExecutor(
        uow_factory,
        transport=transport,
        breaker=breaker,
        secret_cache=secret_cache,
        decryptor=decryptor,
        url_validator=url_validator,
        config=webhook_cfg,
    )
    webhook_service = WebhookService(uow_factory, executor=executor, config=webhook_cfg)
    return GatewayServices(
        secret_cache=secret_cache,
        breaker=breaker,
        transport=transport,
        oracle=oracle,
        executor=executor,
        webhook_service=webhook_service,
        webhook_endpoint_service=WebhookEndpointService(
            uow_factory,
            encryptor=encryptor,
            secret_cache=secret_cache,
            url_validator=url_validator,
            config=webhook_cfg,
        ),
        refund_service=RefundService(
            uow_factory,
            webhook_service,
            oracle=oracle,
            confirmation_requirements=settings.blockchain.confirmation_requirements,
        ),
        payment_link_service=PaymentLinkService(uow_factory),
        team_service=TeamService(uow_factory),
    )

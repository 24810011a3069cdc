"""
Webhook endpoint management: register, list, update, delete and rotate secrets.

Secrets are generated here, sealed by the encryptor before they are stored, and
returned in plaintext exactly once (on creation or rotation). Whenever a stored
ciphertext stops being valid its cached plaintext is dropped from the secret
cache, so the delivery executor never signs with a retired secret.
"""
from __future__ import annotations

from typing import Optional

from application.dtos.webhooks import (
    CreateWebhookEndpoint,
    SecretRotationResponse,
    UpdateWebhookEndpoint,
    WebhookEndpointCreated,
    WebhookEndpointResponse,
)
from application.ports.secrets import SecretCachePort, SecretEncryptor
from application.utils.url_validator import WebhookUrlValidator
from core.config import WebhookSettings
from core.logging_config import get_logger
from domain.common.exceptions import WebhookEndpointNotFoundException
from domain.common.helpers import utcnow
from domain.common.unit_of_work import UnitOfWorkFactory
from domain.webhook.entity import WebhookEndpoint, generate_webhook_secret, normalize_events


logger = get_logger(__name__)

# url / events / enabled cannot be cleared; an explicit null means "leave as is"
_NON_NULLABLE_FIELDS = ("url", "events", "enabled")


def to_response(endpoint: WebhookEndpoint) -> WebhookEndpointResponse:
    return WebhookEndpointResponse(
        id=endpoint.id,
        url=endpoint.url,
        events=list(endpoint.events),
        enabled=endpoint.enabled,
        description=endpoint.description,
        created_at=endpoint.created_at,
        updated_at=endpoint.updated_at,
    )


class WebhookEndpointService:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        *,
        encryptor: SecretEncryptor,
        secret_cache: SecretCachePort,
        url_validator: Optional[WebhookUrlValidator] = None,
        config: Optional[WebhookSettings] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._encryptor = encryptor
        self._secret_cache = secret_cache
        self._config = config or WebhookSettings()
        self._url_validator = url_validator or WebhookUrlValidator(allow_http=self._config.allow_http)

    async def create_endpoint(self, owner_id: str, data: CreateWebhookEndpoint) -> WebhookEndpointCreated:
        await self._url_validator.validate(data.url)
        events = normalize_events(data.events)
        secret = generate_webhook_secret()
        endpoint = WebhookEndpoint(
            user_id=owner_id,
            url=data.url,
            secret=self._encryptor.encrypt(secret),
            events=events,
            enabled=data.enabled,
            description=data.description,
        )
        async with self._uow_factory() as uow:
            endpoint = await uow.webhook_endpoint_repository.create(endpoint)
        logger.info("webhook_endpoint_created", endpoint_id=endpoint.id, owner_id=owner_id, events=events)
        return WebhookEndpointCreated(
            id=endpoint.id,
            url=endpoint.url,
            events=list(endpoint.events),
            enabled=endpoint.enabled,
            description=endpoint.description,
            created_at=endpoint.created_at,
            updated_at=endpoint.updated_at,
            secret=secret,
        )

    async def list_endpoints(self, owner_id: str) -> list[WebhookEndpointResponse]:
        async with self._uow_factory(readonly=True) as uow:
            endpoints = await uow.webhook_endpoint_repository.list_by_owner(owner_id)
        return [to_response(e) for e in endpoints]

    async def get_endpoint(self, endpoint_id: str, owner_id: str) -> WebhookEndpointResponse:
        async with self._uow_factory(readonly=True) as uow:
            endpoint = await uow.webhook_endpoint_repository.get_by_id(endpoint_id, owner_id)
        if endpoint is None:
            raise WebhookEndpointNotFoundException(endpoint_id)
        return to_response(endpoint)

    async def update_endpoint(
        self, endpoint_id: str, owner_id: str, data: UpdateWebhookEndpoint
    ) -> WebhookEndpointResponse:
        changes = data.model_dump(exclude_unset=True)
        for name in _NON_NULLABLE_FIELDS:
            if name in changes and changes[name] is None:
                del changes[name]
        if "url" in changes:
            await self._url_validator.validate(changes["url"])

        async with self._uow_factory() as uow:
            endpoint = await uow.webhook_endpoint_repository.lock_for_update(endpoint_id, owner_id)
            if endpoint is None:
                raise WebhookEndpointNotFoundException(endpoint_id)
            endpoint.apply_changes(changes)
            updated = await uow.webhook_endpoint_repository.update(endpoint)
            if updated is None:
                raise WebhookEndpointNotFoundException(endpoint_id)

        if not updated.enabled:
            self._secret_cache.invalidate(updated.secret)
        logger.info("webhook_endpoint_updated", endpoint_id=endpoint_id, fields=sorted(changes))
        return to_response(updated)

    async def delete_endpoint(self, endpoint_id: str, owner_id: str) -> None:
        """Delete the endpoint together with its delivery history."""
        async with self._uow_factory() as uow:
            endpoint = await uow.webhook_endpoint_repository.lock_for_update(endpoint_id, owner_id)
            if endpoint is None:
                raise WebhookEndpointNotFoundException(endpoint_id)
            await uow.webhook_endpoint_repository.delete(endpoint_id, owner_id)
        self._secret_cache.invalidate(endpoint.secret)
        logger.info("webhook_endpoint_deleted", endpoint_id=endpoint_id, owner_id=owner_id)

    async def rotate_secret(self, endpoint_id: str, owner_id: str) -> SecretRotationResponse:
        """Replace the signing secret; the old one stops signing as soon as this returns."""
        secret = generate_webhook_secret()
        sealed = self._encryptor.encrypt(secret)
        async with self._uow_factory() as uow:
            endpoint = await uow.webhook_endpoint_repository.lock_for_update(endpoint_id, owner_id)
            if endpoint is None:
                raise WebhookEndpointNotFoundException(endpoint_id)
            old_secret = endpoint.secret
            rotated = await uow.webhook_endpoint_repository.replace_secret(endpoint_id, owner_id, sealed)
            if rotated is None:
                raise WebhookEndpointNotFoundException(endpoint_id)

        self._secret_cache.invalidate(old_secret)
        logger.info("webhook_secret_rotated", endpoint_id=endpoint_id, owner_id=owner_id)
        return SecretRotationResponse(
            id=endpoint_id,
            secret=secret,
            rotated_at=rotated.updated_at or utcnow(),
        )

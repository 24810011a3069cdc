"""
Webhook URL validation (SSRF guard).

Rejects anything that could make the gateway call into its own network:
non-HTTPS schemes, embedded credentials, localhost, private / link-local /
multicast / reserved addresses, cloud metadata endpoints, and hostnames whose
DNS records point at any of those.
"""
from __future__ import annotations

import asyncio
import ipaddress
import socket
from typing import Awaitable, Callable, Optional
from urllib.parse import urlsplit

from domain.common.exceptions import InvalidWebhookUrlException

Resolver = Callable[[str], Awaitable[list[str]]]

BLOCKED_HOSTNAMES = frozenset({"localhost", "localhost.localdomain", "ip6-localhost", "ip6-loopback"})
METADATA_ADDRESSES = frozenset({"169.254.169.254", "fd00:ec2::254"})

INTERNAL_NETWORK_MESSAGE = "Webhook URL cannot target localhost or internal networks"


def is_internal_address(ip: ipaddress.IPv4Address | ipaddress.IPv6Address) -> bool:
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return (
        ip.is_loopback
        or ip.is_private
        or ip.is_link_local
        or ip.is_multicast
        or ip.is_reserved
        or ip.is_unspecified
        or (isinstance(ip, ipaddress.IPv4Address) and ip == ipaddress.IPv4Address("255.255.255.255"))
    )


async def resolve_host(hostname: str) -> list[str]:
    """Resolve A/AAAA records without blocking the event loop."""
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(hostname, None, type=socket.SOCK_STREAM)
    return sorted({info[4][0] for info in infos})


class WebhookUrlValidator:
    def __init__(
        self,
        *,
        allow_http: bool = False,
        resolve_dns: bool = True,
        resolver: Optional[Resolver] = None,
    ) -> None:
        self.allow_http = allow_http
        self.resolve_dns = resolve_dns
        self._resolver = resolver or resolve_host

    async def validate(self, url: str) -> None:
        """Raise InvalidWebhookUrlException when `url` is not a safe public endpoint."""
        try:
            parts = urlsplit(url or "")
            hostname = parts.hostname
            _ = parts.port  # malformed port raises ValueError
        except ValueError as e:
            raise InvalidWebhookUrlException("Invalid webhook URL format") from e

        if parts.scheme not in ("http", "https") or not hostname:
            if parts.scheme and parts.scheme not in ("http", "https"):
                raise InvalidWebhookUrlException("Webhook URL must use HTTPS protocol")
            raise InvalidWebhookUrlException("Invalid webhook URL format")
        if parts.scheme == "http" and not self.allow_http:
            raise InvalidWebhookUrlException("Webhook URL must use HTTPS protocol")
        if parts.username or parts.password:
            raise InvalidWebhookUrlException("Webhook URL cannot contain credentials")

        host = hostname.lower().rstrip(".")
        if host in METADATA_ADDRESSES:
            raise InvalidWebhookUrlException("Webhook URL cannot target cloud metadata endpoints")
        if host in BLOCKED_HOSTNAMES or host.endswith(".localhost"):
            raise InvalidWebhookUrlException(INTERNAL_NETWORK_MESSAGE)

        try:
            literal = ipaddress.ip_address(host)
        except ValueError:
            literal = None

        if literal is not None:
            if is_internal_address(literal):
                raise InvalidWebhookUrlException(INTERNAL_NETWORK_MESSAGE)
            return

        if not self.resolve_dns:
            return
        try:
            addresses = await self._resolver(host)
        except OSError as e:
            raise InvalidWebhookUrlException("Webhook URL hostname could not be resolved") from e
        if not addresses:
            raise InvalidWebhookUrlException("Webhook URL hostname could not be resolved")
        for address in addresses:
            try:
                resolved = ipaddress.ip_address(address)
            except ValueError:
                continue
            if is_internal_address(resolved):
                # never echo the resolved address back to the caller
                raise InvalidWebhookUrlException(
                    "Webhook URL hostname resolves to a private/internal address"
                )

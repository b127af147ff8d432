"""Webhook Gate: authenticates and deduplicates inbound LDT deliveries.

Order of checks: media type (415), empty body (400), source allow-list (403),
rate limit (429), signature/timestamp headers (401), HMAC (401), timestamp
window (401), replay cache (duplicate fast path).
"""
import hashlib
import hmac
import ipaddress
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from limits import parse
from limits.storage import MemoryStorage, Storage
from limits.strategies import FixedWindowRateLimiter
from pydantic import ValidationError as SchemaError

from ldt_gateway.commons.errors import (
    AuthenticationError,
    EmptyPayloadError,
    ForbiddenSourceError,
    RateLimitError,
    UnsupportedMediaTypeError,
)
from ldt_gateway.commons.logger import logger
from ldt_gateway.commons.ttl_store import InMemoryTTLStore, TTLStore
from ldt_gateway.validation.validators import DeliveryHeaders, is_supported_media_type


def body_hash(raw: bytes) -> str:
    return hashlib.sha256(raw).hexdigest()


def sign_body(secret: str, timestamp: str, raw: bytes) -> str:
    """HMAC-SHA256 sobre '{timestamp}.{raw}' -> 'sha256=<hex>'."""
    mac = hmac.new(secret.encode("utf-8"), f"{timestamp}.".encode("utf-8") + raw, hashlib.sha256)
    return "sha256=" + mac.hexdigest()


@dataclass(frozen=True)
class GateDecision:
    raw: bytes
    body_hash: str
    replay_key: str
    duplicate: bool = False


class RateLimiter:
    """Limite por origen (por defecto 60 peticiones/minuto) sobre `limits`.

    El storage se inyecta para poder compartirlo entre procesos (redis,
    memcached) o resetearlo en tests.
    """

    def __init__(self, limit: int = 60, per: str = "minute", storage: Optional[Storage] = None):
        self.limit = limit
        self.item = parse(f"{limit}/{per}") if limit > 0 else None
        self.storage = storage if storage is not None else MemoryStorage()
        self._limiter = FixedWindowRateLimiter(self.storage)

    def hit(self, source: str) -> bool:
        """Cuenta una peticion; False si el origen supera el limite."""
        if self.item is None:
            return True
        return self._limiter.hit(self.item, "ldt-webhook", source)

    def reset(self) -> None:
        self.storage.reset()


class SourceAllowList:
    def __init__(self, entries: Optional[List[str]] = None):
        self.networks = [ipaddress.ip_network(e.strip(), strict=False) for e in (entries or []) if e.strip()]

    def allows(self, source: str) -> bool:
        if not self.networks:
            return True
        try:
            addr = ipaddress.ip_address(source)
        except ValueError:
            return False
        # IPv4 mapeada en IPv6 (::ffff:10.0.0.1)
        if addr.version == 6 and addr.ipv4_mapped is not None:
            addr = addr.ipv4_mapped
        return any(addr.version == net.version and addr in net for net in self.networks)


class WebhookGate:
    def __init__(
        self,
        secret: str,
        replay_store: Optional[TTLStore] = None,
        rate_limiter: Optional[RateLimiter] = None,
        allow_list: Optional[SourceAllowList] = None,
        tolerance_sec: int = 300,
        replay_ttl_sec: int = 600,
        clock: Callable[[], float] = time.time,
    ):
        if not secret:
            raise ValueError("Webhook secret not configured")
        self._secret = secret
        self._clock = clock
        self.replay_store = replay_store or InMemoryTTLStore(clock=clock)
        self.rate_limiter = rate_limiter or RateLimiter()
        self.allow_list = allow_list or SourceAllowList()
        self.tolerance_sec = tolerance_sec
        self.replay_ttl_sec = replay_ttl_sec

    def _verify_signature(self, headers: DeliveryHeaders, raw: bytes) -> None:
        expected = sign_body(self._secret, headers.timestamp, raw).split("=", 1)[1]
        if not hmac.compare_digest(expected.encode("ascii"), headers.signature.encode("ascii")):
            raise AuthenticationError("Invalid webhook signature")

    def _check_window(self, timestamp: str) -> None:
        now_ms = int(self._clock() * 1000)
        if abs(now_ms - int(timestamp)) > self.tolerance_sec * 1000:
            raise AuthenticationError("Stale webhook timestamp")

    def admit(
        self,
        raw: bytes,
        content_type: Optional[str],
        timestamp: Optional[str],
        signature: Optional[str],
        idempotency_key: Optional[str] = None,
        source: str = "unknown",
    ) -> GateDecision:
        if not is_supported_media_type(content_type):
            raise UnsupportedMediaTypeError(f"Unsupported content type: {content_type}")
        if not raw or not raw.strip():
            raise EmptyPayloadError("Empty payload")
        if not self.allow_list.allows(source):
            logger.warning(f"Webhook denegado para origen {source}")
            raise ForbiddenSourceError("Access denied - source not allowed")
        if not self.rate_limiter.hit(source):
            logger.warning(f"Rate limit excedido para origen {source}")
            raise RateLimitError("Rate limit exceeded for webhook endpoint")
        if not signature or not timestamp:
            raise AuthenticationError("Missing webhook signature or timestamp")

        try:
            headers = DeliveryHeaders(
                timestamp=timestamp, signature=signature, idempotency_key=idempotency_key
            )
        except SchemaError:
            raise AuthenticationError("Malformed webhook signature headers")

        digest = body_hash(raw)
        try:
            self._verify_signature(headers, raw)
            self._check_window(headers.timestamp)
        except AuthenticationError as ex:
            logger.warning(f"Entrega rechazada ({ex.detail}) hash={digest} origen={source}")
            raise

        replay_key = headers.idempotency_key or f"{headers.timestamp}:{digest}"
        if not self.replay_store.add_if_absent(replay_key, digest, self.replay_ttl_sec):
            logger.info(f"Entrega duplicada ignorada hash={digest}")
            return GateDecision(raw=raw, body_hash=digest, replay_key=replay_key, duplicate=True)
        return GateDecision(raw=raw, body_hash=digest, replay_key=replay_key)

    def release(self, replay_key: str) -> None:
        """Olvida un replay key para que el reintento del upstream se procese."""
        self.replay_store.delete(replay_key)

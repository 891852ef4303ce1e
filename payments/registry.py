"""
Adapter Registry

Maps each ``PaymentPlatform`` to its adapter class and hands out configured
adapter instances. Credentials are validated before an adapter is built, and
instances are cached per platform integration so their status cache survives
across requests.
"""

import hashlib
import importlib
import json
import threading

import requests
import structlog

from db.models import PaymentPlatform
from payments.exceptions import PlatformConfigError, UnsupportedPlatformError
from payments.schemas import PlatformConfig

log = structlog.get_logger(__name__)

_ADAPTERS: dict[PaymentPlatform, type] = {}


def register(platform: PaymentPlatform):
    """Class decorator binding an adapter class to ``platform``."""

    def decorator(cls):
        cls.PLATFORM = platform
        _ADAPTERS[platform] = cls
        return cls

    return decorator


def _load_adapters() -> None:
    # Adapter modules register themselves on import
    importlib.import_module("payments.platforms")


def adapter_class(platform_type: PaymentPlatform | str):
    _load_adapters()
    try:
        platform = PaymentPlatform(platform_type)
    except ValueError:
        raise UnsupportedPlatformError(f"Unsupported platform: {platform_type}")
    cls = _ADAPTERS.get(platform)
    if cls is None:
        raise UnsupportedPlatformError(f"Unsupported platform: {platform.value}")
    return cls


def available_platforms() -> list[PaymentPlatform]:
    _load_adapters()
    return sorted(_ADAPTERS, key=lambda platform: platform.value)


def _dispose(adapter) -> None:
    # Sessions handed out by the registry are closed with the adapter
    adapter.session.close()


def _fingerprint(config: PlatformConfig) -> str:
    raw = json.dumps(
        config.model_dump(mode="json", by_alias=False), sort_keys=True, default=str
    )
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class AdapterRegistry:
    """Builds and caches adapters for configured platform integrations."""

    def __init__(
        self,
        *,
        timeout: float = 15.0,
        max_retries: int = 3,
        retry_min_wait: float = 1,
        retry_max_wait: float = 8,
        status_cache_ttl: float = 300,
        session_factory=None,
    ):
        self._instances: dict[str, tuple[str, object]] = {}
        self._lock = threading.Lock()
        self.session_factory = session_factory or requests.Session
        self.configure(
            timeout=timeout,
            max_retries=max_retries,
            retry_min_wait=retry_min_wait,
            retry_max_wait=retry_max_wait,
            status_cache_ttl=status_cache_ttl,
        )

    def configure(
        self,
        *,
        timeout: float,
        max_retries: int,
        retry_min_wait: float,
        retry_max_wait: float,
        status_cache_ttl: float,
    ) -> None:
        self.options = {
            "timeout": timeout,
            "max_retries": max_retries,
            "retry_min_wait": retry_min_wait,
            "retry_max_wait": retry_max_wait,
            "status_cache_ttl": status_cache_ttl,
        }
        self.clear()

    def configure_from_settings(self, settings) -> None:
        self.configure(
            timeout=settings.PAYMENT_HTTP_TIMEOUT,
            max_retries=settings.PAYMENT_MAX_RETRIES,
            retry_min_wait=settings.PAYMENT_RETRY_MIN_WAIT,
            retry_max_wait=settings.PAYMENT_RETRY_MAX_WAIT,
            status_cache_ttl=settings.PLATFORM_STATUS_CACHE_TTL,
        )

    def create(self, config: PlatformConfig):
        """Build a fresh adapter after checking its required credentials."""
        cls = adapter_class(config.platform_type)
        missing = cls.missing_credentials(config)
        if missing:
            raise PlatformConfigError(
                f"Missing credentials for {config.platform_type.value}: "
                + ", ".join(missing),
                missing=missing,
            )
        return cls(config, session=self.session_factory(), **self.options)

    def get(self, config: PlatformConfig):
        """Cached adapter for ``config``; rebuilt when its settings change."""
        fingerprint = _fingerprint(config)
        with self._lock:
            cached = self._instances.get(config.platform_id)
            if cached and cached[0] == fingerprint:
                return cached[1]
            adapter = self.create(config)
            if cached:
                _dispose(cached[1])
            self._instances[config.platform_id] = (fingerprint, adapter)
            log.debug(
                "platform.adapter_cached",
                platform_id=config.platform_id,
                platform=config.platform_type.value,
            )
            return adapter

    def invalidate(self, platform_id: str) -> None:
        with self._lock:
            cached = self._instances.pop(platform_id, None)
        if cached:
            _dispose(cached[1])

    def clear(self) -> None:
        with self._lock:
            instances = list(self._instances.values())
            self._instances.clear()
        for _, adapter in instances:
            _dispose(adapter)


# Process-wide registry; main.py applies the configured timeouts at startup
registry = AdapterRegistry()


def create_adapter(config: PlatformConfig):
    return registry.create(config)


def get_adapter(config: PlatformConfig):
    return registry.get(config)

"""Tests for adapter registration, credential checks and instance caching."""

import pytest

from db.models import PaymentPlatform
from payments.exceptions import PlatformConfigError, UnsupportedPlatformError
from payments.platforms.base import BasePlatformAdapter
from payments.platforms.kiwify import KiwifyAdapter
from payments.platforms.shopify import ShopifyAdapter
from payments.registry import (
    AdapterRegistry,
    adapter_class,
    available_platforms,
    create_adapter,
    get_adapter,
)
from payments.schemas import PlatformConfig, PlatformCredentials
from tests.conftest import KIWIFY_SETTINGS


def kiwify_config(**settings):
    return PlatformConfig(
        platform_id="kiwify-main",
        platform_type=PaymentPlatform.kiwify,
        settings=PlatformCredentials.model_validate({**KIWIFY_SETTINGS, **settings}),
    )


def test_every_platform_has_an_adapter():
    assert available_platforms() == sorted(PaymentPlatform, key=lambda p: p.value)
    for platform in PaymentPlatform:
        cls = adapter_class(platform)
        assert issubclass(cls, BasePlatformAdapter)
        assert cls.PLATFORM == platform


def test_adapter_class_accepts_values():
    assert adapter_class("kiwify") is KiwifyAdapter
    assert adapter_class(PaymentPlatform.shopify) is ShopifyAdapter


def test_unknown_platform_is_unsupported():
    with pytest.raises(UnsupportedPlatformError, match="paypal"):
        adapter_class("paypal")


def test_create_adapter_uses_registry_options(platform_registry, http_session):
    adapter = create_adapter(kiwify_config())

    assert isinstance(adapter, KiwifyAdapter)
    assert adapter.session is http_session
    assert adapter.timeout == 5
    assert adapter.max_retries == 3
    assert adapter.status_cache_ttl == 300


def test_missing_credentials_are_named():
    config = PlatformConfig(
        platform_id="kiwify-main",
        platform_type=PaymentPlatform.kiwify,
        settings=PlatformCredentials(api_key="kw_live_key"),
    )
    with pytest.raises(PlatformConfigError) as exc_info:
        create_adapter(config)

    assert exc_info.value.missing == ["secret_key"]
    assert "secret_key" in str(exc_info.value)


def test_shopify_requires_shop_domain():
    config = PlatformConfig(
        platform_id="shop",
        platform_type=PaymentPlatform.shopify,
        settings=PlatformCredentials(api_key="shpat_1"),
    )
    with pytest.raises(PlatformConfigError) as exc_info:
        create_adapter(config)
    assert exc_info.value.missing == ["shop_domain"]


def test_extra_credentials_count_as_present():
    settings = PlatformCredentials.model_validate({"api_key": "k", "secret_key": "s", "store_url": "https://shop.test"})
    assert settings.value("store_url") == "https://shop.test"
    assert settings.value("not_there") is None


def test_get_adapter_caches_per_platform():
    first = get_adapter(kiwify_config())
    second = get_adapter(kiwify_config())
    assert first is second


def test_changed_settings_rebuild_adapter(http_session):
    first = get_adapter(kiwify_config())
    second = get_adapter(kiwify_config(api_key="kw_rotated"))

    assert first is not second
    assert second.settings.api_key == "kw_rotated"
    # The replaced adapter's session is released
    http_session.close.assert_called()


def test_invalidate_drops_cached_instance(platform_registry):
    first = get_adapter(kiwify_config())
    platform_registry.invalidate("kiwify-main")
    assert get_adapter(kiwify_config()) is not first

    # Unknown ids are ignored
    platform_registry.invalidate("does-not-exist")


def test_configure_clears_cache(platform_registry):
    first = get_adapter(kiwify_config())
    platform_registry.configure(
        timeout=1, max_retries=1, retry_min_wait=0, retry_max_wait=0, status_cache_ttl=10
    )
    second = get_adapter(kiwify_config())

    assert second is not first
    assert second.timeout == 1
    assert second.status_cache_ttl == 10


def test_configure_from_settings(mock_settings, http_session):
    local = AdapterRegistry(session_factory=lambda: http_session)
    local.configure_from_settings(mock_settings)

    assert local.options == {
        "timeout": mock_settings.PAYMENT_HTTP_TIMEOUT,
        "max_retries": mock_settings.PAYMENT_MAX_RETRIES,
        "retry_min_wait": 0,
        "retry_max_wait": 0,
        "status_cache_ttl": mock_settings.PLATFORM_STATUS_CACHE_TTL,
    }

import structlog

from core.logging import BusinessEvents
from payments.platforms.base import _mask, _trunc


class _TestLogger:
    def __init__(self):
        self.output = []

    def __call__(self, logger, method_name, event_dict):
        """Process log events and store them for test assertions"""
        self.output.append(event_dict.copy())
        return event_dict


def _configure(test_logger, cache=True):
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            test_logger,  # Add our test logger
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=cache,
    )


def test_structlog_json():
    test_logger = _TestLogger()
    _configure(test_logger)

    log = structlog.get_logger("test")
    log.bind(foo="bar").info("hello world")

    assert len(test_logger.output) > 0
    log_dict = test_logger.output[-1]

    assert log_dict["foo"] == "bar"
    assert log_dict["event"] == "hello world"
    assert "timestamp" in log_dict
    assert log_dict["level"] == "info"


def test_payment_log_format():
    test_logger = _TestLogger()
    _configure(test_logger)

    log = structlog.get_logger("test.payments")
    log.bind(platform_id="kiwify-main", amount=97.0, provider_id="kw_1").info(
        BusinessEvents.PAYMENT_SUCCESS
    )

    log_dict = test_logger.output[-1]

    assert log_dict["platform_id"] == "kiwify-main"
    assert log_dict["amount"] == 97.0
    assert log_dict["provider_id"] == "kw_1"
    assert log_dict["event"] == "payment.success"
    assert log_dict["level"] == "info"


def test_mask_and_truncate_helpers():
    assert _mask("kw_live_secret_key") == "*" * 14 + "_key"
    assert _mask("abc") == "***"
    assert _mask(None) == ""
    assert _trunc("x" * 1000).endswith("...")
    assert len(_trunc("x" * 1000)) < 1000
    assert _trunc({"a": 1}) == "{'a': 1}"


def test_api_request_logging(client):
    """Test that API requests are properly logged with structured data."""
    test_logger = _TestLogger()

    # Clear structlog's cache to ensure our test configuration is used
    structlog.reset_defaults()
    _configure(test_logger, cache=False)

    response = client.post(
        "/api/v1/utm",
        json={
            "base_url": "https://shop.example.com",
            "source": "facebook",
            "medium": "cpc",
            "campaign": "launch",
        },
        headers={"X-User-Id": "user-1"},
    )
    assert response.status_code == 201

    api_logs = [
        log
        for log in test_logger.output
        if log.get("event") == BusinessEvents.API_ENTRY
    ]
    assert len(api_logs) > 0

    log_entry = api_logs[0]
    assert log_entry["method"] == "POST"
    assert "/api/v1/utm" in log_entry["url"]
    assert log_entry["user_id"] == "user-1"
    assert log_entry["level"] == "info"
    assert "timestamp" in log_entry


def test_query_params_are_redacted(client):
    test_logger = _TestLogger()
    structlog.reset_defaults()
    _configure(test_logger, cache=False)

    client.get("/api/v1/utm", params={"user_id": "user-1", "api_key": "kw_live_key"})

    entry = next(log for log in test_logger.output if log.get("event") == BusinessEvents.API_ENTRY)
    assert entry["query_params"] == {"user_id": "user-1", "api_key": "***"}

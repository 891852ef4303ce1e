"""Tests for tracer setup from the OTEL settings."""

from core.tracing import init_tracer, parse_resource_attributes


def test_parse_resource_attributes():
    assert parse_resource_attributes("service.name=payhub, service.version=0.1.0") == {
        "service.name": "payhub",
        "service.version": "0.1.0",
    }
    assert parse_resource_attributes("broken,=x,deployment.environment=prod") == {
        "deployment.environment": "prod"
    }
    assert parse_resource_attributes(None) == {}


def test_init_tracer_resource(monkeypatch):
    monkeypatch.setenv("DISABLE_TRACING", "1")

    provider = init_tracer(
        "payhub-api",
        endpoint="http://collector:4317",
        resource_attributes="service.name=ignored,service.version=0.2.0",
    )
    try:
        attributes = provider.resource.attributes
        assert attributes["service.name"] == "payhub-api"
        assert attributes["service.version"] == "0.2.0"
    finally:
        provider.shutdown()

import pytest
from aiohttp.test_utils import TestClient, TestServer

from clonewatch.monitoring.health import HealthServer


async def _client(provider) -> TestClient:
    server = HealthServer("127.0.0.1", 0, status_provider=provider)
    client = TestClient(TestServer(server.build_app()))
    await client.start_server()
    return client


@pytest.mark.asyncio
async def test_healthz_returns_status_json():
    client = await _client(lambda: {"monitoring_running": True, "baseline_loaded": False})
    try:
        resp = await client.get("/healthz")
        assert resp.status == 200
        payload = await resp.json()
    finally:
        await client.close()

    assert payload == {"monitoring_running": True, "baseline_loaded": False, "status": "ok"}


@pytest.mark.asyncio
async def test_metrics_exports_numeric_fields():
    client = await _client(
        lambda: {"status": "ok", "uptime_seconds": 12.5, "checks_in_flight": 2, "monitoring_running": True}
    )
    try:
        resp = await client.get("/metrics")
        body = await resp.text()
    finally:
        await client.close()

    lines = body.strip().splitlines()
    assert "clonewatch_uptime_seconds 12.5" in lines
    assert "clonewatch_checks_in_flight 2" in lines
    assert "clonewatch_monitoring_running 1" in lines
    assert not any(line.startswith("clonewatch_status ") for line in lines)


@pytest.mark.asyncio
async def test_failing_provider_reports_error():
    def broken():
        raise RuntimeError("boom")

    client = await _client(broken)
    try:
        payload = await (await client.get("/healthz")).json()
    finally:
        await client.close()

    assert payload["status"] == "error"
    assert payload["message"] == "boom"


@pytest.mark.asyncio
async def test_disabled_server_does_not_bind():
    server = HealthServer("127.0.0.1", 0, status_provider=dict, enabled=False)
    await server.start()
    assert server._runner is None
    await server.stop()


@pytest.mark.asyncio
async def test_async_provider_and_threat_level_gauges():
    async def provider():
        return {
            "status": "ok",
            "watched_domains": {"low": 3, "medium": 0, "high": 1, "unchecked": 2},
        }

    client = await _client(provider)
    try:
        payload = await (await client.get("/healthz")).json()
        body = await (await client.get("/metrics")).text()
    finally:
        await client.close()

    assert payload["watched_domains"]["high"] == 1
    lines = body.strip().splitlines()
    assert 'clonewatch_watched_domains{threat_level="high"} 1' in lines
    assert 'clonewatch_watched_domains{threat_level="medium"} 0' in lines
    assert 'clonewatch_watched_domains{threat_level="unchecked"} 2' in lines
    assert len(lines) == 4

import pytest

from clonewatch.analyzer.renderer import PlaywrightRenderer, _is_global_host
from clonewatch.errors import RenderFailure


@pytest.mark.asyncio
async def test_private_addresses_are_not_global():
    assert await _is_global_host("127.0.0.1") is False
    assert await _is_global_host("10.1.2.3") is False
    assert await _is_global_host("8.8.8.8") is True


@pytest.mark.asyncio
async def test_private_targets_are_refused_before_navigation():
    renderer = PlaywrightRenderer()

    with pytest.raises(RenderFailure) as excinfo:
        await renderer._render("http://127.0.0.1:8080/login", 1000)

    assert excinfo.value.url == "http://127.0.0.1:8080/login"
    assert "private or local" in excinfo.value.reason

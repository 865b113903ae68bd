import pytest
import httpx
import respx

from cardpay.shared.core.http import get_http_client, init_http_client, close_http_client


@pytest.fixture(autouse=True)
async def cleanup_http_singleton():
    """Ensure a clean singleton state for every test."""
    await close_http_client()
    yield
    await close_http_client()


@pytest.mark.asyncio
async def test_http_client_singleton():
    """Verify that get_http_client returns the same instance (singleton)."""
    await init_http_client()
    client1 = get_http_client()
    client2 = get_http_client()

    assert client1 is client2
    assert isinstance(client1, httpx.AsyncClient)
    assert client1.is_closed is False

    await close_http_client()
    # After close the next access lazily builds a fresh client.
    client3 = get_http_client()
    assert client3 is not client1
    assert client3.is_closed is False


@pytest.mark.asyncio
async def test_http_client_uses_coin_api_timeout():
    """The shared client is bounded by COIN_API_TIMEOUT_SECONDS and identifies itself."""
    await init_http_client()
    client = get_http_client()

    assert client.timeout.read == 15.0
    assert client.headers["User-Agent"].startswith("cardpay/")
    assert client.headers["Content-Type"] == "application/json"

    with respx.mock:
        respx.get("https://coin.test/api/ping").mock(return_value=httpx.Response(200))
        response = await client.get("https://coin.test/api/ping")
        assert response.status_code == 200


@pytest.mark.asyncio
async def test_init_http_client_is_idempotent():
    await init_http_client()
    client = get_http_client()
    await init_http_client()
    assert get_http_client() is client


@pytest.mark.asyncio
async def test_close_http_client_closes_pool():
    await init_http_client()
    client = get_http_client()
    await close_http_client()
    assert client.is_closed is True

"""Tests for the shared Redis client used by the global login limiter."""

from unittest.mock import AsyncMock, patch

import pytest


class TestGetRedis:
    """Tests for get_redis function."""

    @pytest.mark.asyncio
    async def test_get_redis_creates_client_on_first_call(self):
        from authguard.core import redis as redis_module

        redis_module.redis_client = None

        with patch.object(redis_module.redis, 'from_url') as mock_from_url:
            mock_client = AsyncMock()
            mock_from_url.return_value = mock_client

            result = await redis_module.get_redis()

            mock_from_url.assert_called_once()
            args, kwargs = mock_from_url.call_args
            assert args == (redis_module.settings.REDIS_URL,)
            assert kwargs["decode_responses"] is True
            assert kwargs["socket_timeout"] == redis_module.settings.REDIS_SOCKET_TIMEOUT_SECONDS
            assert result == mock_client

        redis_module.redis_client = None

    @pytest.mark.asyncio
    async def test_get_redis_reuses_existing_client(self):
        from authguard.core import redis as redis_module

        mock_client = AsyncMock()
        redis_module.redis_client = mock_client

        with patch.object(redis_module.redis, 'from_url') as mock_from_url:
            result = await redis_module.get_redis()

            mock_from_url.assert_not_called()
            assert result == mock_client

        redis_module.redis_client = None

    @pytest.mark.asyncio
    async def test_get_redis_passes_socket_timeouts(self, monkeypatch):
        from authguard.core import redis as redis_module

        redis_module.redis_client = None
        monkeypatch.setattr(redis_module.settings, "REDIS_SOCKET_TIMEOUT_SECONDS", 0.5)

        with patch.object(redis_module.redis, 'from_url') as mock_from_url:
            await redis_module.get_redis()

        kwargs = mock_from_url.call_args.kwargs
        assert kwargs["socket_timeout"] == 0.5
        assert kwargs["socket_connect_timeout"] == 0.5

        redis_module.redis_client = None


class TestCloseRedis:
    @pytest.mark.asyncio
    async def test_close_redis_closes_and_clears_client(self):
        from authguard.core import redis as redis_module

        mock_client = AsyncMock()
        redis_module.redis_client = mock_client

        await redis_module.close_redis()

        mock_client.close.assert_called_once()
        assert redis_module.redis_client is None

    @pytest.mark.asyncio
    async def test_close_redis_handles_no_client(self):
        from authguard.core import redis as redis_module

        redis_module.redis_client = None

        await redis_module.close_redis()

        assert redis_module.redis_client is None

"""
Tests for the fallback chain driver and bounded retries.
"""
import pytest
from unittest.mock import AsyncMock

from error_handler import TransientAPIError
from fallback import Attempt, first_success, retry


class TestFirstSuccess:
    """Test cases for first_success"""

    @pytest.mark.asyncio
    async def test_stops_at_first_result(self):
        first = AsyncMock(return_value=None)
        second = AsyncMock(return_value="found")
        third = AsyncMock(return_value="unused")

        result = await first_success([
            Attempt("first", first),
            Attempt("second", second),
            Attempt("third", third),
        ])

        assert result == "found"
        third.assert_not_called()

    @pytest.mark.asyncio
    async def test_predicate_stops_chain(self):
        second = AsyncMock(return_value="found")

        result = await first_success([
            Attempt("first", AsyncMock(side_effect=ValueError("boom")),
                    continue_if=lambda error: isinstance(error, KeyError)),
            Attempt("second", second),
        ])

        assert result is None
        second.assert_not_called()

    @pytest.mark.asyncio
    async def test_predicate_allows_next_step(self):
        result = await first_success([
            Attempt("first", AsyncMock(side_effect=KeyError("site")),
                    continue_if=lambda error: isinstance(error, KeyError)),
            Attempt("second", AsyncMock(return_value=42)),
        ])

        assert result == 42

    @pytest.mark.asyncio
    async def test_exhausted_chain(self):
        assert await first_success([Attempt("only", AsyncMock(return_value=None))]) is None
        assert await first_success([]) is None


class TestRetry:
    """Test cases for retry"""

    @pytest.mark.asyncio
    async def test_empty_results_retried_with_delay(self):
        call = AsyncMock(side_effect=[None, None, "late"])
        sleep = AsyncMock()

        result = await retry(call, retries=3, delay=3.0, sleep=sleep)

        assert result == "late"
        assert call.await_count == 3
        assert sleep.await_count == 2
        sleep.assert_awaited_with(3.0)

    @pytest.mark.asyncio
    async def test_gives_up_after_bound(self):
        call = AsyncMock(return_value=None)
        sleep = AsyncMock()

        result = await retry(call, retries=3, delay=1.0, sleep=sleep)

        assert result is None
        assert call.await_count == 4
        assert sleep.await_count == 3

    @pytest.mark.asyncio
    async def test_retryable_error_exhausted(self):
        call = AsyncMock(side_effect=ValueError("404"))

        with pytest.raises(TransientAPIError):
            await retry(call, retries=2, delay=0, retry_if=lambda e: isinstance(e, ValueError),
                        sleep=AsyncMock())

        assert call.await_count == 3

    @pytest.mark.asyncio
    async def test_non_retryable_error_raised_immediately(self):
        call = AsyncMock(side_effect=KeyError("site"))

        with pytest.raises(KeyError):
            await retry(call, retries=3, delay=0, retry_if=lambda e: isinstance(e, ValueError),
                        sleep=AsyncMock())

        assert call.await_count == 1

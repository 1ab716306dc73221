"""Checker service - performs HTTP/HTTPS health checks against targets."""
import asyncio
import logging
import time
from datetime import datetime
from typing import Callable, Optional

import httpx

from ..schemas import CheckResult, Target

logger = logging.getLogger(__name__)


class CheckerService:
    """Service for probing a single target.

    ``check`` never raises for network problems. Every failure to connect,
    resolve, negotiate TLS or finish inside the target's timeout is turned
    into a failed ``CheckResult`` carrying the elapsed time and a description.
    """

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.perf_counter,
        now: Callable[[], datetime] = datetime.utcnow,
    ):
        self._transport = transport
        self._clock = clock
        self._now = now

    async def check(self, target: Target) -> CheckResult:
        """Check ``target`` once and record the outcome."""
        checked_at = self._now()
        start = self._clock()

        try:
            # httpx timeouts are per phase; wait_for bounds the whole exchange
            response = await asyncio.wait_for(
                self._request(target), timeout=target.timeout
            )
        except httpx.TimeoutException as e:
            return self._failure(target, checked_at, start, f"Request timeout: {_describe(e)}")
        except asyncio.TimeoutError:
            return self._failure(target, checked_at, start, f"Request timeout after {target.timeout}s")
        except httpx.ConnectError as e:
            return self._failure(target, checked_at, start, f"Connection error: {_describe(e)}")
        except httpx.HTTPError as e:
            return self._failure(target, checked_at, start, f"{type(e).__name__}: {e}")
        except Exception as e:
            logger.warning(f"Unexpected error probing target {target.id}: {type(e).__name__}: {e}")
            return self._failure(target, checked_at, start, f"{type(e).__name__}: {e}")

        response_time = self._elapsed_ms(start)
        is_success = response.status_code == target.expected_status_code

        return CheckResult(
            target_id=target.id,
            checked_at=checked_at,
            status_code=response.status_code,
            response_time_ms=response_time,
            is_success=is_success,
            error_message=None if is_success else (
                f"Expected status {target.expected_status_code}, got {response.status_code}"
            ),
        )

    async def _request(self, target: Target) -> httpx.Response:
        async with httpx.AsyncClient(
            timeout=target.timeout,
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            return await client.request(target.method.value, target.request_url)

    def _elapsed_ms(self, start: float) -> int:
        return max(0, int((self._clock() - start) * 1000))

    def _failure(
        self,
        target: Target,
        checked_at: datetime,
        start: float,
        message: str,
    ) -> CheckResult:
        return CheckResult(
            target_id=target.id,
            checked_at=checked_at,
            status_code=None,
            response_time_ms=self._elapsed_ms(start),
            is_success=False,
            error_message=message,
        )


def _describe(error: Exception) -> str:
    return str(error) or type(error).__name__

"""Session handling and transient-failure retry shared by the engine services."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Awaitable, Callable, Optional

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from league.utils.exceptions import DatabaseError

logger = logging.getLogger(__name__)


class BaseService:
    """Gives a service a unit-of-work session and a retry helper."""

    # Locked SQLite files and dropped connections surface as these
    RETRYABLE_ERRORS = (OperationalError, DatabaseError)
    RETRY_BASE_DELAY = 0.1

    def __init__(self, session_factory):
        self.session_factory = session_factory

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Session committed when the block exits cleanly, rolled back otherwise."""
        async with self.session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            await session.commit()

    async def execute_with_retry(self, func: Callable[[], Awaitable[Any]],
                                 max_retries: int = 3,
                                 description: Optional[str] = None) -> Any:
        """
        Await func(), retrying transient database failures.

        Args:
            func: Zero-argument coroutine function performing the work
            max_retries: Total attempts before the last error propagates
            description: Label for log lines, defaults to the function name

        Returns:
            Whatever func returns
        """
        label = description or getattr(func, '__name__', 'database call')
        attempt = 1
        while True:
            try:
                return await func()
            except self.RETRYABLE_ERRORS as e:
                if attempt >= max_retries:
                    logger.error(f"{label} failed after {attempt} attempts: {e}")
                    raise
                delay = self.RETRY_BASE_DELAY * 2 ** (attempt - 1)
                logger.warning(f"{label} failed (attempt {attempt}/{max_retries}), retrying in {delay:.2f}s: {e}")
                await asyncio.sleep(delay)
                attempt += 1

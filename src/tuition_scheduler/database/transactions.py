'''
Retryable transaction wrapper.

Every mutating booking operation hands a unit-of-work coroutine to
RetryableTransaction. Each attempt gets a fresh session and a fresh
transaction, so a retried attempt re-reads everything instead of reusing
state loaded by the failed one.
'''
import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..common.config import settings
from ..common.exceptions import ConflictError, ContentionError, InfrastructureError, SchedulingError
from ..common.logger import log

T = TypeVar("T")

# deadlock_detected, serialization_failure, lock_not_available
_CONTENTION_PGCODES = {"40P01", "40001", "55P03"}
_CONTENTION_MESSAGES = (
    "deadlock detected",
    "could not serialize access",
    "could not obtain lock",
    "database is locked",
)


def is_contention_error(exc: DBAPIError) -> bool:
    """True if the storage layer reported a lock / deadlock / serialization failure."""
    orig = getattr(exc, "orig", None)
    pgcode = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if pgcode in _CONTENTION_PGCODES:
        return True
    message = str(exc).lower()
    return any(snippet in message for snippet in _CONTENTION_MESSAGES)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 0.1
    jitter: float = 0.05

    def delay_for(self, attempt: int) -> float:
        """Exponential backoff for the given (1-based) failed attempt."""
        base = self.base_delay * (2 ** (attempt - 1))
        return base + random.uniform(0, self.jitter * attempt)

    @classmethod
    def from_settings(cls) -> 'RetryPolicy':
        return cls(
            max_attempts=settings.TRANSACTION_MAX_ATTEMPTS,
            base_delay=settings.TRANSACTION_RETRY_BASE_DELAY
        )


class RetryableTransaction:
    """
    Runs a unit of work inside one transaction and retries the whole unit
    when the storage layer reports contention.
    """
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.session_factory = session_factory
        self.policy = policy or RetryPolicy.from_settings()
        self._sleep = sleep

    async def run(self, op_name: str, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        attempt = 1
        while True:
            try:
                return await self._run_once(work)
            except ContentionError as exc:
                if attempt >= self.policy.max_attempts:
                    log.error(f"{op_name}: giving up after {attempt} attempts due to contention.")
                    raise ContentionError(
                        f"The booking system is busy; '{op_name}' could not complete. Please try again.",
                        details={"attempts": attempt}
                    ) from exc
                delay = self.policy.delay_for(attempt)
                log.warning(f"{op_name}: contention on attempt {attempt}, retrying in {delay:.3f}s ({exc.message})")
                await self._sleep(delay)
                attempt += 1

    async def _run_once(self, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        session = self.session_factory()
        try:
            async with session.begin():
                return await work(session)
        except SchedulingError:
            raise
        except IntegrityError as e:
            log.warning(f"Integrity violation rolled back: {e.orig}")
            raise ConflictError(
                "The requested change violates a uniqueness rule (the time window may already exist).",
                details={"reason": str(e.orig)}
            ) from e
        except OperationalError as e:
            if is_contention_error(e):
                raise ContentionError(str(e.orig)) from e
            log.error(f"Storage failure rolled back: {e}", exc_info=True)
            raise InfrastructureError("The storage layer is unavailable.") from e
        except DBAPIError as e:
            log.error(f"Storage failure rolled back: {e}", exc_info=True)
            raise InfrastructureError("The storage layer reported an error.") from e
        finally:
            await session.close()

import time
import inspect
import functools
import logging
from datetime import datetime, timezone

logger = logging.getLogger("nexus.timing")


def utc_now() -> datetime:
    """Timezone-aware UTC now; every stored timestamp uses this."""
    return datetime.now(timezone.utc)


def timeit(label: str = None):
    """
    Decorator to log execution time for a function (sync or async).

    Usage:
        @timeit()
        def foo():
            ...

        @timeit("auth.login")
        async def bar():
            await ...
    """

    def _decorate(func):
        name = label or getattr(func, "__qualname__", getattr(func, "__name__", "function"))

        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def _aw(*args, **kwargs):
                start = time.perf_counter()
                try:
                    return await func(*args, **kwargs)
                finally:
                    elapsed_ms = (time.perf_counter() - start) * 1000.0
                    logger.debug(f"[timing] {name} took {elapsed_ms:.2f} ms")

            return _aw

        @functools.wraps(func)
        def _w(*args, **kwargs):
            start = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                elapsed_ms = (time.perf_counter() - start) * 1000.0
                logger.debug(f"[timing] {name} took {elapsed_ms:.2f} ms")

        return _w

    return _decorate

"""Wait limits for blocking storage and record store calls."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, Type, TypeVar

from dupkeep.errors import DupkeepError

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class BoundedCalls:
    """Run backend calls on worker threads and stop waiting after a timeout.

    A call that outlives its timeout keeps running on its worker thread. The
    caller gets ``error`` immediately; ``on_late`` (if given) receives the call's
    result once it finally completes, so side effects can be undone.
    """

    def __init__(self, max_workers: int = 4, *, name: str = "dupkeep-io") -> None:
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, max_workers), thread_name_prefix=name
        )

    def run(
        self,
        fn: Callable[..., T],
        *args: Any,
        timeout: float | None,
        error: Type[DupkeepError],
        action: str,
        on_late: Callable[[T], None] | None = None,
        **kwargs: Any,
    ) -> T:
        """Call ``fn(*args, **kwargs)`` and wait at most ``timeout`` seconds.

        Args:
            fn: Blocking callable.
            timeout: Seconds to wait; ``None`` runs ``fn`` on the calling thread.
            error: Error raised on timeout or on a failure outside the
                ``DupkeepError`` family.
            action: Short description used in error messages.
            on_late: Undo hook for a call that completes after its timeout.

        Raises:
            DupkeepError: Whatever ``fn`` raised from the taxonomy, or ``error``.
        """
        if timeout is None:
            try:
                return fn(*args, **kwargs)
            except DupkeepError:
                raise
            except Exception as exc:
                raise error(f"{action} failed: {exc}") from exc

        future = self._executor.submit(fn, *args, **kwargs)
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError as exc:
            if not future.cancel() and on_late is not None:
                future.add_done_callback(_late_handler(on_late, action))
            raise error(f"{action} timed out after {timeout}s") from exc
        except DupkeepError:
            raise
        except Exception as exc:
            raise error(f"{action} failed: {exc}") from exc

    def close(self) -> None:
        self._executor.shutdown(wait=True)


def _late_handler(on_late: Callable[[Any], None], action: str) -> Callable[[Future], None]:
    def handle(future: Future) -> None:
        if future.cancelled() or future.exception() is not None:
            return
        LOGGER.warning("Undoing late completion of %s", action)
        try:
            on_late(future.result())
        except Exception:
            LOGGER.exception("Failed to undo late completion of %s", action)

    return handle


__all__ = ["BoundedCalls"]

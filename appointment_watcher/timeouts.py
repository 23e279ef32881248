"""
Hard time budgets for blocking calls.

The wrapped call runs on a worker thread; when the budget expires the caller
stops waiting and gets OperationTimeout. The worker itself is not killed and
may finish in the background, its result is discarded.
"""
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from typing import Callable, TypeVar

T = TypeVar('T')


class OperationTimeout(Exception):
    """Raised when a call did not finish within its time budget."""
    pass


def run_with_timeout(func: Callable[..., T], timeout: float, *args, **kwargs) -> T:
    """Call func(*args, **kwargs) and wait at most `timeout` seconds.

    Exceptions raised by func propagate unchanged.

    Raises:
        OperationTimeout: If the budget expired first
    """
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='watcher-io')
    future = executor.submit(func, *args, **kwargs)
    try:
        return future.result(timeout=timeout)
    except FuturesTimeoutError:
        future.cancel()
        name = getattr(func, '__qualname__', repr(func))
        raise OperationTimeout(f"{name} did not finish within {timeout}s")
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

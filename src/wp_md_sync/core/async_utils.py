"""Async utilities for bridging blocking HTTP and file I/O to asyncio."""

import asyncio
import functools
import logging
import queue
import threading
from concurrent.futures import Executor, Future
from typing import Any, Callable, Coroutine, Sequence, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


class DaemonThreadPool(Executor):
    """Thread pool whose workers are daemon threads.

    ``asyncio.run`` joins the loop's default executor on exit, so a
    ``requests`` call stuck on a slow server would hold up Ctrl-C for the
    full socket timeout.  Work submitted here is abandoned instead once
    :meth:`shutdown` is called with ``wait=False``.

    Args:
        max_workers: Upper bound on worker threads.
        thread_name_prefix: Prefix for worker thread names.
    """

    def __init__(self, max_workers: int, thread_name_prefix: str = "") -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be greater than 0")
        self._max_workers = max_workers
        self._prefix = thread_name_prefix or "DaemonThreadPool"
        self._work: queue.SimpleQueue = queue.SimpleQueue()
        self._threads: list[threading.Thread] = []
        self._idle = 0
        self._lock = threading.Lock()
        self._shutdown = False

    def submit(self, fn, /, *args, **kwargs) -> Future:
        with self._lock:
            if self._shutdown:
                raise RuntimeError("cannot schedule new work after shutdown")
            future: Future = Future()
            self._work.put((future, fn, args, kwargs))
            if self._idle:
                self._idle -= 1
            elif len(self._threads) < self._max_workers:
                thread = threading.Thread(
                    target=self._worker,
                    name=f"{self._prefix}_{len(self._threads)}",
                    daemon=True,
                )
                thread.start()
                self._threads.append(thread)
            return future

    def _worker(self) -> None:
        while True:
            job = self._work.get()
            if job is None:
                return
            future, fn, args, kwargs = job
            if future.set_running_or_notify_cancel():
                try:
                    result = fn(*args, **kwargs)
                except BaseException as exc:
                    future.set_exception(exc)
                else:
                    future.set_result(result)
            del job, future
            with self._lock:
                if self._shutdown:
                    return
                self._idle += 1

    def shutdown(self, wait: bool = True, *, cancel_futures: bool = False) -> None:
        with self._lock:
            self._shutdown = True
            if cancel_futures:
                while True:
                    try:
                        job = self._work.get_nowait()
                    except queue.Empty:
                        break
                    if job is not None:
                        job[0].cancel()
            for _ in self._threads:
                self._work.put(None)
        if wait:
            for thread in self._threads:
                thread.join()


async def run_sync(
    func: Callable[..., T],
    *args: Any,
    executor: Executor | None = None,
    **kwargs: Any,
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Used for every ``requests`` call and every file or state read/write
    made from the watcher, poller and pipelines.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        executor: Pool to run on; the loop's default pool when ``None``.
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        items = await run_sync(client.list_all, "page", executor=pool)
    """
    if executor is None:
        return await asyncio.to_thread(func, *args, **kwargs)
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(
        executor, functools.partial(func, *args, **kwargs)
    )


async def run_sync_limited(
    semaphore: asyncio.Semaphore | None,
    func: Callable[..., T],
    *args: Any,
    executor: Executor | None = None,
    **kwargs: Any,
) -> T:
    """Run a synchronous function in a thread pool, bounded by *semaphore*.

    Falls back to unbounded if no semaphore is given.  Each site session
    owns its own semaphore so sites never throttle one another.

    Args:
        semaphore: Concurrency bound, or ``None``.
        func: Synchronous function to call
        *args: Positional arguments for func
        executor: Pool to run on; the loop's default pool when ``None``.
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)
    """
    if semaphore is None:
        return await run_sync(func, *args, executor=executor, **kwargs)
    async with semaphore:
        return await run_sync(func, *args, executor=executor, **kwargs)


async def gather_limited(
    coros: Sequence[Coroutine[Any, Any, T]],
) -> list[T]:
    """Run coroutines concurrently and return their results in order.

    Exceptions propagate from the first failure.
    """
    return list(await asyncio.gather(*coros))

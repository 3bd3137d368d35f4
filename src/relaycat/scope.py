import asyncio
import weakref
from typing import Any, Coroutine, TypeVar


T = TypeVar("T")


class Scope:
    """A hierarchical cancel signal.

    Cancelling a scope is idempotent and permanent. It cancels every child
    scope and every task spawned through `spawn`.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self._children: weakref.WeakSet[Scope] = weakref.WeakSet()
        self._tasks: set[asyncio.Task] = set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self):
        if self.cancelled:
            return

        self._event.set()
        for child in list(self._children):
            child.cancel()

    def child(self) -> "Scope":
        scope = Scope()
        if self.cancelled:
            scope.cancel()
        else:
            self._children.add(scope)
        return scope

    async def wait(self):
        await self._event.wait()

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(run_cancellable(self, coro))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task


def new_scope() -> Scope:
    return Scope()


def child(scope: Scope) -> Scope:
    return scope.child()


def cancel(scope: Scope):
    scope.cancel()


async def run_cancellable(scope: Scope, coro: Coroutine[Any, Any, T]) -> T | None:
    """Runs `coro` until it finishes or `scope` is cancelled, whichever comes first.

    Returns
    -------
    T | None
        The result of `coro`, or None if the scope was cancelled first. An
        exception raised by `coro` is re-raised.
    """

    task = asyncio.ensure_future(coro)
    if scope.cancelled:
        task.cancel()
        return None

    cancelled = asyncio.create_task(scope.wait())
    try:
        done, _ = await asyncio.wait({task, cancelled}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        cancelled.cancel()
        raise

    if task in done:
        cancelled.cancel()
        return task.result()

    task.cancel()
    return None

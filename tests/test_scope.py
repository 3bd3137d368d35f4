import asyncio

from relaycat.scope import Scope, cancel, child, new_scope, run_cancellable


def test_cancel_is_idempotent():
    async def body():
        scope = new_scope()
        cancel(scope)
        cancel(scope)
        scope.cancel()
        assert scope.cancelled

    asyncio.run(body())


def test_cancel_propagates_to_children():
    async def body():
        parent = new_scope()
        first = child(parent)
        second = first.child()

        parent.cancel()

        assert first.cancelled
        assert second.cancelled

    asyncio.run(body())


def test_cancelling_child_leaves_parent_running():
    async def body():
        parent = Scope()
        sibling = parent.child()
        parent.child().cancel()

        assert not parent.cancelled
        assert not sibling.cancelled

    asyncio.run(body())


def test_child_of_cancelled_scope_starts_cancelled():
    async def body():
        parent = Scope()
        parent.cancel()

        assert parent.child().cancelled

    asyncio.run(body())


def test_run_cancellable_returns_result():
    async def body():
        async def work():
            await asyncio.sleep(0)
            return 42

        assert await run_cancellable(Scope(), work()) == 42

    asyncio.run(body())


def test_run_cancellable_reraises():
    async def body():
        async def work():
            raise ConnectionResetError()

        try:
            await run_cancellable(Scope(), work())
        except ConnectionResetError:
            return
        raise AssertionError("ConnectionResetError was not raised")

    asyncio.run(body())


def test_run_cancellable_stops_blocked_task():
    async def body():
        scope = Scope()
        started = asyncio.Event()
        finished = []

        async def blocked():
            started.set()
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                finished.append("cancelled")
                raise

        runner = asyncio.create_task(run_cancellable(scope, blocked()))
        await started.wait()
        scope.cancel()

        assert await asyncio.wait_for(runner, 1) is None
        for _ in range(3):
            await asyncio.sleep(0)
        assert finished == ["cancelled"]

    asyncio.run(body())


def test_run_cancellable_on_cancelled_scope_does_not_run():
    async def body():
        scope = Scope()
        scope.cancel()
        ran = []

        async def work():
            ran.append(True)

        assert await run_cancellable(scope, work()) is None
        await asyncio.sleep(0)
        assert ran == []

    asyncio.run(body())


def test_spawn_is_cancelled_with_parent():
    async def body():
        parent = Scope()
        scope = parent.child()
        task = scope.spawn(asyncio.Event().wait())

        await asyncio.sleep(0)
        parent.cancel()

        assert await asyncio.wait_for(task, 1) is None

    asyncio.run(body())

"""Worker placement for payload executions.

Two strategies, chosen per action by ``prefer_separate_thread``:

- SharedPoolPlacement: coroutine payloads become tasks on the running
  event loop; plain callables run on the loop's default executor.
- DedicatedThreadPlacement: every execution gets its own thread, never
  drawn from a shared pool. Coroutine payloads run on a private event
  loop inside that thread and see a cancellation event relayed from the
  host loop.

Both return an asyncio future resolved on the host loop, so completion
bookkeeping always happens on the loop thread.
"""

import asyncio
import concurrent.futures
import dataclasses
import inspect
import threading
from collections.abc import Awaitable
from typing import Any, Protocol

from cadence.scheduling.types import ActionPayload, ScheduledActionContext


class WorkerPlacement(Protocol):
    """Starts a payload execution and returns a future for its completion."""

    def start(
        self, payload: ActionPayload, context: ScheduledActionContext
    ) -> asyncio.Future[Any]: ...


async def _await(awaitable: Awaitable[Any]) -> Any:
    return await awaitable


def _is_async(payload: ActionPayload) -> bool:
    # Also covers instances whose __call__ is a coroutine function
    return inspect.iscoroutinefunction(payload) or inspect.iscoroutinefunction(
        getattr(payload, "__call__", None)
    )


async def _run_with_relayed_cancellation(
    payload: ActionPayload,
    context: ScheduledActionContext,
    host_loop: asyncio.AbstractEventLoop,
) -> None:
    """Await a coroutine payload on the current thread's private loop.

    The host's cancellation event belongs to the host loop, so the payload
    gets its own event which is set once the host event fires.
    """
    private_loop = asyncio.get_running_loop()
    cancellation = asyncio.Event()

    def relay(watcher: concurrent.futures.Future[Any]) -> None:
        if watcher.cancelled() or private_loop.is_closed():
            return
        private_loop.call_soon_threadsafe(cancellation.set)

    watcher = asyncio.run_coroutine_threadsafe(context.cancellation.wait(), host_loop)
    watcher.add_done_callback(relay)
    try:
        await payload(dataclasses.replace(context, cancellation=cancellation))
    finally:
        watcher.cancel()


def _run_blocking(
    payload: ActionPayload,
    context: ScheduledActionContext,
    host_loop: asyncio.AbstractEventLoop,
) -> None:
    """Run a payload to completion on the current (non-loop) thread."""
    if _is_async(payload):
        asyncio.run(_run_with_relayed_cancellation(payload, context, host_loop))
        return
    result = payload(context)
    if inspect.isawaitable(result):
        asyncio.run(_await(result))


class SharedPoolPlacement:
    def start(
        self, payload: ActionPayload, context: ScheduledActionContext
    ) -> asyncio.Future[Any]:
        if _is_async(payload):
            return asyncio.ensure_future(payload(context))
        loop = asyncio.get_running_loop()
        return loop.run_in_executor(None, _run_blocking, payload, context, loop)


class DedicatedThreadPlacement:
    def start(
        self, payload: ActionPayload, context: ScheduledActionContext
    ) -> asyncio.Future[Any]:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Any] = loop.create_future()

        def resolve(error: BaseException | None) -> None:
            if future.done():
                return
            if error is None:
                future.set_result(None)
            elif isinstance(error, asyncio.CancelledError):
                future.cancel()
            else:
                future.set_exception(error)

        def target() -> None:
            try:
                _run_blocking(payload, context, loop)
            except BaseException as e:  # forwarded to the awaiting runner
                loop.call_soon_threadsafe(resolve, e)
            else:
                loop.call_soon_threadsafe(resolve, None)

        # Daemon: a payload that ignores cancellation must not block exit
        thread = threading.Thread(
            target=target,
            name=f"cadence-{context.action_name}-{context.iteration}",
            daemon=True,
        )
        thread.start()
        return future


def placement_for(prefer_separate_thread: bool) -> WorkerPlacement:
    if prefer_separate_thread:
        return DedicatedThreadPlacement()
    return SharedPoolPlacement()

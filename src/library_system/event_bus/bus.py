"""Event Bus Implementation.

This module provides the EventBus class that handles listener registration
and event emission for the library system. Events are identified by dotted
string names (``"book.borrowed"``) and listeners receive the positional
arguments passed to ``emit``.

## Key Features

- **Durable and one-shot listeners**: ``on`` and ``once``
- **Listener cap**: Per-event limit on durable listeners (default 100)
- **Error Isolation**: A failing listener is logged and reported on the
  ``"error"`` event; the remaining listeners still run
- **Async emission**: ``emit_async`` awaits listeners that return awaitables
- **Namespaces**: ``namespace("catalog")`` returns a view that prefixes names

## Usage

```python
from library_system.event_bus import EventBus

bus = EventBus()
bus.on("book.borrowed", lambda payload: print(payload.book_title))
bus.once("system.initialized", lambda payload: print("ready"))

bus.emit("book.borrowed", payload)
await bus.emit_async("book.returned", payload)

catalog = bus.namespace("catalog")
catalog.on("updated", refresh)  # listens to "catalog.updated"
```

"""

import asyncio
import inspect
from typing import Any

from loguru import logger

from library_system.constants import DEFAULT_MAX_LISTENERS, EVENT_ERROR

from .core import Listener, validate_event_name, validate_listener


class EventBus:
    """Process-local publish/subscribe dispatcher.

    Listeners are kept in two registries, durable listeners registered with
    ``on`` and one-shot listeners registered with ``once``. Identity is by
    reference: registering the same callable twice makes it fire twice.

    Example:
        ```python
        bus = EventBus(max_listeners=10)
        bus.on("user.registered", send_welcome_email).on("user.registered", audit)
        fired = bus.emit("user.registered", event)
        ```
    """

    def __init__(self, max_listeners: int = DEFAULT_MAX_LISTENERS) -> None:
        """Initialize a new EventBus instance.

        Args:
            max_listeners: Maximum number of durable listeners per event name
        """
        self._listeners: dict[str, list[Listener]] = {}
        self._once_listeners: dict[str, list[Listener]] = {}
        self._max_listeners = max_listeners
        self._background_tasks: set[asyncio.Future] = set()
        logger.trace(f"EventBus initialized (max_listeners={max_listeners})")

    def on(self, event_name: str, listener: Listener) -> "EventBus":
        """Register a durable listener for an event.

        If the event already has ``max_listeners`` durable listeners the call
        is ignored and a warning is logged.

        Args:
            event_name: Name of the event to listen to
            listener: Callable invoked with the emitted arguments

        Returns:
            The bus itself, for chaining

        Raises:
            HandlerRegistrationError: If the event name or listener is invalid
        """
        validate_event_name(event_name)
        validate_listener(listener)

        if len(self._listeners.get(event_name, [])) >= self._max_listeners:
            logger.warning(f"Maximum listeners ({self._max_listeners}) reached for event: {event_name}")
            return self

        self._listeners.setdefault(event_name, []).append(listener)
        logger.trace(f"Registered listener for {event_name}: {listener}")
        return self

    def once(self, event_name: str, listener: Listener) -> "EventBus":
        """Register a listener that is removed right before its first invocation.

        One-shot listeners are not counted against the durable listener cap.

        Returns:
            The bus itself, for chaining
        """
        validate_event_name(event_name)
        validate_listener(listener)

        self._once_listeners.setdefault(event_name, []).append(listener)
        logger.trace(f"Registered one-shot listener for {event_name}: {listener}")
        return self

    def off(self, event_name: str, listener: Listener | None = None) -> "EventBus":
        """Remove a listener, or every listener of an event.

        Args:
            event_name: Name of the event
            listener: Listener to remove from both the durable and one-shot
                registries. If omitted, all listeners for the event are removed.

        Returns:
            The bus itself, for chaining
        """
        validate_event_name(event_name)

        if listener is None:
            self._listeners.pop(event_name, None)
            self._once_listeners.pop(event_name, None)
            logger.trace(f"Removed all listeners for {event_name}")
            return self

        validate_listener(listener)
        for registry in (self._listeners, self._once_listeners):
            event_listeners = registry.get(event_name)
            if event_listeners and listener in event_listeners:
                event_listeners.remove(listener)
                if not event_listeners:
                    del registry[event_name]
        logger.trace(f"Removed listener for {event_name}: {listener}")
        return self

    def emit(self, event_name: str, *args: Any) -> bool:
        """Invoke every listener of an event synchronously.

        Durable listeners run first, in registration order, followed by the
        one-shot listeners, which are taken out of the registry before any of
        them is called. A listener that raises is logged and reported through
        an ``"error"`` event carrying ``(error, event_name, listener)``; the
        remaining listeners still run and nothing is raised to the caller.

        A listener returning an awaitable has it scheduled on the running
        event loop (fire-and-forget). Use ``emit_async`` to wait for them.

        Args:
            event_name: Name of the event
            *args: Arguments passed to every listener

        Returns:
            True if at least one listener completed without raising
        """
        validate_event_name(event_name)

        durable = list(self._listeners.get(event_name, []))
        one_shot = self._once_listeners.pop(event_name, [])
        logger.trace(f"Emitting {event_name} to {len(durable) + len(one_shot)} listeners")

        fired = False
        for listener in durable + one_shot:
            try:
                result = listener(*args)
            except Exception as e:
                self._report_listener_error(e, event_name, listener)
                continue
            fired = True
            if inspect.isawaitable(result):
                self._schedule(result, event_name, listener)

        return fired

    async def emit_async(self, event_name: str, *args: Any) -> bool:
        """Invoke every listener of an event and await the awaitable results.

        Listener resolution is the same as for ``emit``. Every listener is
        invoked before anything is awaited; the awaitables are then joined
        and, if any of them failed, the first failure is raised once all of
        them have settled.

        Args:
            event_name: Name of the event
            *args: Arguments passed to every listener

        Returns:
            True if the event had any listener

        Raises:
            Exception: The first exception raised by an awaited listener
        """
        validate_event_name(event_name)

        all_listeners = list(self._listeners.get(event_name, [])) + self._once_listeners.pop(event_name, [])

        pending = []
        for listener in all_listeners:
            try:
                result = listener(*args)
            except Exception as e:
                self._report_listener_error(e, event_name, listener)
                continue
            if inspect.isawaitable(result):
                pending.append(result)

        if pending:
            logger.trace(f"Awaiting {len(pending)} async listeners for {event_name}")
            results = await asyncio.gather(*pending, return_exceptions=True)
            failures = [r for r in results if isinstance(r, BaseException)]
            if failures:
                logger.error(f"Error in async listeners for {event_name!r}: {failures[0]!r}")
                raise failures[0]

        return bool(all_listeners)

    def event_names(self) -> list[str]:
        """Get the names of all events that have at least one listener."""
        return list(dict.fromkeys([*self._listeners, *self._once_listeners]))

    def listener_count(self, event_name: str) -> int:
        """Get the number of durable plus one-shot listeners for an event."""
        validate_event_name(event_name)
        return len(self._listeners.get(event_name, [])) + len(self._once_listeners.get(event_name, []))

    def listeners(self, event_name: str) -> list[Listener]:
        """Get a copy of the listeners for an event, durable ones first."""
        validate_event_name(event_name)
        return [*self._listeners.get(event_name, []), *self._once_listeners.get(event_name, [])]

    def remove_all_listeners(self, event_name: str | None = None) -> "EventBus":
        """Clear listeners for a specific event or for all events."""
        if event_name is None:
            self._listeners.clear()
            self._once_listeners.clear()
            logger.debug("Cleared all listeners")
            return self

        validate_event_name(event_name)
        self._listeners.pop(event_name, None)
        self._once_listeners.pop(event_name, None)
        logger.debug(f"Cleared listeners for {event_name}")
        return self

    def set_max_listeners(self, max_listeners: int) -> "EventBus":
        """Set the per-event durable listener cap.

        Raises:
            ValueError: If ``max_listeners`` is not a non-negative integer
        """
        if not isinstance(max_listeners, int) or isinstance(max_listeners, bool) or max_listeners < 0:
            raise ValueError(f"Maximum listeners must be a non-negative integer, got: {max_listeners!r}")
        self._max_listeners = max_listeners
        return self

    def get_max_listeners(self) -> int:
        return self._max_listeners

    def get_stats(self) -> dict[str, Any]:
        """Summarize the registry.

        Example:
            ```python
            bus.get_stats()
            # {"total_events": 1, "total_listeners": 2, "max_listeners": 100,
            #  "events": [{"name": "book.added", "listener_count": 2}]}
            ```
        """
        names = self.event_names()
        events = [{"name": name, "listener_count": self.listener_count(name)} for name in names]
        return {
            "total_events": len(names),
            "total_listeners": sum(e["listener_count"] for e in events),
            "max_listeners": self._max_listeners,
            "events": events,
        }

    def namespace(self, prefix: str) -> "NamespacedEventBus":
        """Return a view of this bus that prefixes event names with ``prefix + "."``.

        The view shares this bus's registry, so listeners registered through
        it are visible (under the prefixed name) on the parent bus.
        """
        validate_event_name(prefix)
        return NamespacedEventBus(self, prefix)

    def _report_listener_error(self, error: Exception, event_name: str, listener: Listener) -> None:
        logger.error(f"Error in listener for {event_name!r}: {error!r}")
        # An error raised by an "error" listener is not re-published
        if event_name != EVENT_ERROR:
            self.emit(EVENT_ERROR, error, event_name, listener)

    def _schedule(self, awaitable: Any, event_name: str, listener: Listener) -> None:
        try:
            task = asyncio.ensure_future(awaitable)
        except RuntimeError:
            logger.warning(f"Listener for {event_name!r} returned an awaitable outside an event loop; use emit_async")
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return

        self._background_tasks.add(task)

        def _done(fut: asyncio.Future) -> None:
            self._background_tasks.discard(fut)
            if fut.cancelled():
                return
            error = fut.exception()
            if isinstance(error, Exception):
                self._report_listener_error(error, event_name, listener)

        task.add_done_callback(_done)


class NamespacedEventBus:
    """Prefixing view over an ``EventBus``.

    ``on``, ``once``, ``off``, ``emit`` and ``emit_async`` translate ``name``
    into ``f"{prefix}.{name}"`` and delegate to the parent bus.
    """

    def __init__(self, parent: EventBus, prefix: str) -> None:
        self._parent = parent
        self._prefix = prefix

    @property
    def prefix(self) -> str:
        return self._prefix

    def _qualify(self, event_name: str) -> str:
        validate_event_name(event_name)
        return f"{self._prefix}.{event_name}"

    def on(self, event_name: str, listener: Listener) -> "NamespacedEventBus":
        self._parent.on(self._qualify(event_name), listener)
        return self

    def once(self, event_name: str, listener: Listener) -> "NamespacedEventBus":
        self._parent.once(self._qualify(event_name), listener)
        return self

    def off(self, event_name: str, listener: Listener | None = None) -> "NamespacedEventBus":
        self._parent.off(self._qualify(event_name), listener)
        return self

    def emit(self, event_name: str, *args: Any) -> bool:
        return self._parent.emit(self._qualify(event_name), *args)

    async def emit_async(self, event_name: str, *args: Any) -> bool:
        return await self._parent.emit_async(self._qualify(event_name), *args)

    def listener_count(self, event_name: str) -> int:
        return self._parent.listener_count(self._qualify(event_name))

    def namespace(self, prefix: str) -> "NamespacedEventBus":
        return NamespacedEventBus(self._parent, self._qualify(prefix))

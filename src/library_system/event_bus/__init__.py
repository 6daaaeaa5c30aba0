"""Event Bus System for Decoupled Component Communication.

This module provides the publish/subscribe bus used by the library facade to
announce state changes. It supports:

- **Named Events**: Dotted string names such as ``"book.borrowed"``
- **Durable and One-shot Listeners**: ``on`` / ``once`` / ``off``
- **Error Isolation**: Listener failures don't affect other listeners
- **Async Emission**: ``emit_async`` awaits coroutine listeners
- **Namespaces**: Prefixing views sharing one registry

## Quick Start

```python
from library_system.event_bus import EventBus

def on_borrowed(event) -> None:
    print(f"{event.user_name} borrowed {event.book_title}")

bus = EventBus()
bus.on("book.borrowed", on_borrowed)
bus.emit("book.borrowed", event)
```

For the exception hierarchy, see `core.py`.
For the implementation and API reference, see `bus.py`.

"""

from .bus import EventBus, NamespacedEventBus
from .core import EventBusError, HandlerRegistrationError, Listener

__all__ = [
    "EventBus",
    "EventBusError",
    "HandlerRegistrationError",
    "Listener",
    "NamespacedEventBus",
]

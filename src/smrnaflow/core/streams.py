"""Typed single-writer, multi-reader data streams.

A :class:`Stream` keeps its full publish history, so every subscription sees
every item regardless of when it subscribed. Streaming streams release items
as they arrive; collecting streams release nothing until ``close`` and then
hand each subscriber the whole batch exactly once, sorted by sample key and
then file name.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Union

from smrnaflow.core.sample import resolve_sample_key
from smrnaflow.exceptions import PipelineError, StreamClosedError


@dataclass(frozen=True)
class Item:
    """Immutable handle to one artifact plus its sample key."""

    path: Path
    key: str

    @classmethod
    def from_path(cls, path: Union[str, Path], key: Optional[str] = None) -> "Item":
        path = Path(path)
        return cls(path=path, key=key if key is not None else resolve_sample_key(path))

    @property
    def name(self) -> str:
        return self.path.name


StreamListener = Callable[["Stream", str, Optional[Item]], None]


def batch_order(item: Item):
    """Sort key for released batches: sample key, then file name."""
    return (item.key, item.name)


class Stream:
    """Ordered item history with one producer and any number of subscribers."""

    def __init__(self, name: str, collecting: bool = False):
        self.name = name
        self.collecting = collecting
        self._items: List[Item] = []
        self._closed = False
        self._poisoned = False
        self._lock = threading.RLock()
        self._cond = threading.Condition(self._lock)
        self._listeners: List[StreamListener] = []

    def __repr__(self) -> str:
        kind = "collecting" if self.collecting else "streaming"
        state = "closed" if self._closed else "open"
        return f"Stream({self.name!r}, {kind}, {state}, items={len(self._items)})"

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    @property
    def poisoned(self) -> bool:
        with self._lock:
            return self._poisoned

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def snapshot(self) -> List[Item]:
        """Return a copy of the publish history."""
        with self._lock:
            return list(self._items)

    def add_listener(self, listener: StreamListener, replay: bool = False) -> None:
        """Register a callback for ``publish``/``close`` events.

        Listeners run while the stream lock is held so they observe events in
        publish order. With ``replay`` the existing history (and a close, if
        any) is delivered first, atomically with registration.
        """
        with self._lock:
            self._listeners.append(listener)
            if replay:
                for item in self._released():
                    listener(self, "publish", item)
                if self._closed:
                    listener(self, "close", None)

    def publish(self, item: Item) -> None:
        with self._cond:
            if self._closed:
                raise StreamClosedError(
                    f"Cannot publish {item.name} to closed stream '{self.name}'"
                )
            self._items.append(item)
            if self.collecting:
                return
            self._cond.notify_all()
            for listener in list(self._listeners):
                listener(self, "publish", item)

    def close(self, poisoned: bool = False) -> None:
        """Mark the stream complete. Closing twice is a no-op."""
        with self._cond:
            if self._closed:
                return
            self._closed = True
            self._poisoned = self._poisoned or poisoned
            self._cond.notify_all()
            listeners = list(self._listeners)
            if self.collecting:
                for item in sorted(self._items, key=batch_order):
                    for listener in listeners:
                        listener(self, "publish", item)
            for listener in listeners:
                listener(self, "close", None)

    def _released(self) -> List[Item]:
        """Items listeners have been told about so far."""
        if not self.collecting:
            return list(self._items)
        if not self._closed:
            return []
        return sorted(self._items, key=batch_order)

    def subscribe(self, collecting: Optional[bool] = None) -> "Subscription":
        """Return a new cursor.

        ``collecting`` overrides the stream kind for this subscriber only, so a
        streaming stream can also feed a barrier consumer.
        """
        return Subscription(self, collecting=collecting)

    def find(self, key: str) -> Optional[Item]:
        """Return the first published item with sample key ``key``."""
        with self._lock:
            for item in self._items:
                if item.key == key:
                    return item
        return None


class Subscription:
    """Independent consumption cursor over a :class:`Stream`."""

    def __init__(self, stream: Stream, collecting: Optional[bool] = None):
        self.stream = stream
        self.collecting = stream.collecting if collecting is None else collecting
        self._cursor = 0
        self._batch_taken = False

    def poll(self) -> List[Item]:
        """Return all newly released items without blocking."""
        with self.stream._lock:
            if self.collecting:
                if not self.stream._closed or self._batch_taken:
                    return []
                self._batch_taken = True
                return sorted(self.stream._items, key=batch_order)
            items = self.stream._items[self._cursor :]
            self._cursor += len(items)
            return list(items)

    @property
    def exhausted(self) -> bool:
        """True once the stream is closed and everything has been taken."""
        with self.stream._lock:
            if not self.stream._closed:
                return False
            if self.collecting:
                return self._batch_taken
            return self._cursor >= len(self.stream._items)

    def get(self, timeout: Optional[float] = None) -> Optional[Item]:
        """Block until the next streaming item is available.

        Returns ``None`` when the stream closes with nothing left, or when the
        timeout expires.
        """
        if self.collecting:
            raise PipelineError(
                f"Stream '{self.stream.name}' is collecting; use batch() instead of get()"
            )
        with self.stream._cond:
            self.stream._cond.wait_for(
                lambda: self._cursor < len(self.stream._items) or self.stream._closed,
                timeout=timeout,
            )
            if self._cursor < len(self.stream._items):
                item = self.stream._items[self._cursor]
                self._cursor += 1
                return item
            return None

    def batch(self, timeout: Optional[float] = None) -> Optional[List[Item]]:
        """Block until the stream closes and return the full sorted batch once.

        Returns ``None`` if the timeout expires or the batch was already taken.
        """
        with self.stream._cond:
            self.stream._cond.wait_for(lambda: self.stream._closed, timeout=timeout)
            if not self.stream._closed or self._batch_taken:
                return None
            self._batch_taken = True
            return sorted(self.stream._items, key=batch_order)

    def __iter__(self) -> Iterator[Item]:
        if self.collecting:
            batch = self.batch()
            yield from batch or []
            return
        while True:
            item = self.get()
            if item is None:
                return
            yield item


def merge(*sources: Stream, name: Optional[str] = None, collecting: bool = False) -> Stream:
    """Return a stream interleaving ``sources`` in publish order.

    Relative order within each source is preserved. The merged stream closes
    once every source has closed and is poisoned if any source was.
    """
    if not sources:
        raise PipelineError("merge() requires at least one source stream")
    merged = Stream(name or "+".join(s.name for s in sources), collecting=collecting)
    pending = {id(s) for s in sources}
    poisoned = {"value": False}
    guard = threading.Lock()

    def forward(source: Stream, event: str, item: Optional[Item]) -> None:
        if event == "publish" and item is not None:
            merged.publish(item)
            return
        with guard:
            pending.discard(id(source))
            poisoned["value"] = poisoned["value"] or source._poisoned
            done = not pending
        if done:
            merged.close(poisoned=poisoned["value"])

    for source in sources:
        source.add_listener(forward, replay=True)
    return merged


class StreamRouter:
    """Named registry of streams with publish/subscribe bookkeeping.

    A router-level listener is attached to every stream so the scheduler can be
    woken whenever anything is published or closed.
    """

    def __init__(self, on_event: Optional[Callable[[Stream, str], None]] = None):
        self._streams: Dict[str, Stream] = {}
        self._lock = threading.Lock()
        self._on_event = on_event

    def __contains__(self, name: str) -> bool:
        return name in self._streams

    def __getitem__(self, name: str) -> Stream:
        try:
            return self._streams[name]
        except KeyError:
            raise PipelineError(f"Unknown stream: {name}") from None

    @property
    def names(self) -> List[str]:
        return list(self._streams)

    def _register(self, stream: Stream) -> Stream:
        with self._lock:
            if stream.name in self._streams:
                raise PipelineError(f"Stream already registered: {stream.name}")
            self._streams[stream.name] = stream
        if self._on_event is not None:
            callback = self._on_event
            stream.add_listener(lambda s, event, _item: callback(s, event))
        return stream

    def create(self, name: str, collecting: bool = False) -> Stream:
        return self._register(Stream(name, collecting=collecting))

    def empty(self, name: str) -> Stream:
        """Register a stream that is already closed and has no items."""
        stream = Stream(name)
        stream.close()
        return self._register(stream)

    def publish(self, name: str, item: Item) -> None:
        self[name].publish(item)

    def close(self, name: str, poisoned: bool = False) -> None:
        self[name].close(poisoned=poisoned)

    def subscribe(self, name: str, collecting: Optional[bool] = None) -> Subscription:
        return self[name].subscribe(collecting=collecting)

    def merge(self, name: str, sources: Sequence[str], collecting: bool = False) -> Stream:
        return self._register(
            merge(*(self[s] for s in sources), name=name, collecting=collecting)
        )

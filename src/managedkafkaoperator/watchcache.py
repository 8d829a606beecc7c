"""The watch cache: the operator's local, eventually consistent mirror of the
resources it manages.

Each registered `~managedkafkaoperator.kinds.ResourceKind` gets one
`ResourceInformer`, which lists the kind once (the initial sync) and then
follows its watch stream in a background thread, replacing whole snapshots in
a `ResourceStore`. Reconciliation code only ever reads from the cache, so it
never has to call the API server to learn the state of a dependent resource.
"""

from __future__ import annotations

__all__ = ("ResourceInformer", "ResourceStore", "WatchCache")

import copy
import json
import threading
from collections.abc import Callable, Iterable
from typing import Any, Protocol

import structlog
from kubernetes import watch
from kubernetes.client.exceptions import ApiException

from managedkafkaoperator.exceptions import CacheSyncError
from managedkafkaoperator.kinds import ResourceKind

Snapshot = dict[str, Any]


class ResourceListener(Protocol):
    """Receives the changes observed for one kind of resource."""

    def on_add(self, obj: Snapshot) -> None: ...

    def on_update(self, old: Snapshot, new: Snapshot) -> None: ...

    def on_delete(self, obj: Snapshot) -> None: ...


def object_key(obj: Snapshot) -> tuple[str, str]:
    metadata = obj.get("metadata") or {}
    return metadata.get("namespace") or "", metadata["name"]


class ResourceStore:
    """Thread-safe mapping of ``(namespace, name)`` to the last observed
    snapshot of a resource.

    Entries are only ever replaced as a whole. Readers get deep copies so
    nothing outside the store can mutate a cached snapshot.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: dict[tuple[str, str], Snapshot] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def get(self, namespace: str, name: str) -> Snapshot | None:
        with self._lock:
            obj = self._items.get((namespace or "", name))
        return copy.deepcopy(obj) if obj is not None else None

    def list(self) -> list[Snapshot]:
        with self._lock:
            objs = list(self._items.values())
        return copy.deepcopy(objs)

    def put(self, obj: Snapshot) -> Snapshot | None:
        """Store ``obj``, returning the snapshot it replaced."""
        with self._lock:
            old = self._items.get(object_key(obj))
            self._items[object_key(obj)] = obj
        return old

    def remove(self, obj: Snapshot) -> Snapshot | None:
        with self._lock:
            return self._items.pop(object_key(obj), None)

    def reset(
        self, objs: Iterable[Snapshot]
    ) -> tuple[list[Snapshot], list[tuple[Snapshot, Snapshot]], list[Snapshot]]:
        """Replace the whole content of the store.

        Returns
        -------
        added : `list`
            Snapshots that were not in the store.
        updated : `list` of `tuple`
            ``(old, new)`` pairs of snapshots that were replaced.
        removed : `list`
            Snapshots that are no longer present.
        """
        new_items = {object_key(obj): obj for obj in objs}
        with self._lock:
            old_items = self._items
            self._items = new_items
        added = [obj for key, obj in new_items.items() if key not in old_items]
        updated = [
            (old_items[key], obj)
            for key, obj in new_items.items()
            if key in old_items
        ]
        removed = [
            obj for key, obj in old_items.items() if key not in new_items
        ]
        return added, updated, removed


class ResourceInformer:
    """Lists and watches one kind of resource into a `ResourceStore`.

    Parameters
    ----------
    kind : `ResourceKind`
        The kind to mirror.
    label_selector : `str`
        Selector limiting the mirrored objects to those the operator manages.
    watch_factory : callable
        Factory of ``kubernetes.watch.Watch``-like objects.
    list_timeout : `int`, optional
        Server-side timeout of the initial list, in seconds.
    watch_timeout : `int`
        Server-side timeout of one watch request; the watch is re-established
        from the last seen ``resourceVersion`` when it expires.
    retry_delay : `float`
        Seconds to wait before re-establishing a watch that failed.
    """

    def __init__(
        self,
        kind: ResourceKind,
        *,
        label_selector: str,
        watch_factory: Callable[[], Any] = watch.Watch,
        list_timeout: int | None = None,
        watch_timeout: int = 300,
        retry_delay: float = 5.0,
    ) -> None:
        self.kind = kind
        self.store = ResourceStore()
        self._label_selector = label_selector
        self._watch_factory = watch_factory
        self._list_timeout = list_timeout
        self._watch_timeout = watch_timeout
        self._retry_delay = retry_delay
        self._listeners: list[ResourceListener] = []
        self._resource_version: str | None = None
        self._synced = threading.Event()
        self._stopped = threading.Event()
        self._watcher: Any = None
        self._thread: threading.Thread | None = None
        self._logger = structlog.getLogger(__name__).bind(kind=kind.name)

    @property
    def synced(self) -> bool:
        return self._synced.is_set()

    def add_listener(self, listener: ResourceListener) -> None:
        self._listeners.append(listener)

    def sync(self) -> None:
        """List every object of the kind and replace the store with them.

        Raises
        ------
        kubernetes.client.exceptions.ApiException
            Raised if the list call fails.
        """
        kwargs: dict[str, Any] = {
            "label_selector": self._label_selector,
            "_preload_content": False,
        }
        if self._list_timeout is not None:
            kwargs["timeout_seconds"] = self._list_timeout
        response = self.kind.list_func(*self.kind.list_args, **kwargs)
        listing = json.loads(response.data)

        items = listing.get("items") or []
        added, updated, removed = self.store.reset(items)
        self._resource_version = listing["metadata"].get("resourceVersion")
        self._synced.set()
        self._logger.info(
            f"Synced {len(items)} {self.kind.name} at resourceVersion "
            f"{self._resource_version}"
        )

        for obj in added:
            self._notify("on_add", obj)
        for old, new in updated:
            self._notify("on_update", old, new)
        for obj in removed:
            self._notify("on_delete", obj)

    def start(self) -> None:
        """Follow the watch stream in a background thread."""
        if self._thread is not None:
            return
        self._stopped.clear()
        self._thread = threading.Thread(
            target=self._run,
            name=f"informer-{self.kind.name}",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: float | None = 1.0) -> None:
        self._stopped.set()
        watcher = self._watcher
        if watcher is not None:
            watcher.stop()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None
        self._synced.clear()

    def _run(self) -> None:
        while not self._stopped.is_set():
            try:
                if self._resource_version is None:
                    self.sync()
                self._watch()
            except ApiException as e:
                if e.status == 410:
                    self._logger.info(
                        "Watch resourceVersion expired; relisting"
                    )
                    self._resource_version = None
                    continue
                self._logger.exception("Watch failed; retrying")
                self._stopped.wait(self._retry_delay)
            except Exception:
                self._logger.exception("Watch failed; retrying")
                self._stopped.wait(self._retry_delay)

    def _watch(self) -> None:
        self._watcher = self._watch_factory()
        stream = self._watcher.stream(
            self.kind.list_func,
            *self.kind.list_args,
            label_selector=self._label_selector,
            resource_version=self._resource_version,
            timeout_seconds=self._watch_timeout,
            allow_watch_bookmarks=True,
        )
        for event in stream:
            if self._stopped.is_set():
                break
            try:
                if not self.handle_event(event):
                    self._resource_version = None
                    break
            except Exception:
                self._logger.exception(
                    f"Could not process {event.get('type')} event"
                )

    def handle_event(self, event: dict[str, Any]) -> bool:
        """Apply one watch event to the store and notify listeners.

        Returns
        -------
        keep_watching : `bool`
            `False` if the stream has expired and the kind must be relisted.
        """
        event_type = event["type"]
        obj = event.get("raw_object")
        if obj is None:
            obj = event["object"]

        if event_type == "ERROR":
            code = obj.get("code") if isinstance(obj, dict) else None
            if code == 410:
                self._logger.info("Watch stream expired; relisting")
                return False
            raise ApiException(
                status=code or 0,
                reason=obj.get("message") if isinstance(obj, dict) else None,
            )

        resource_version = (obj.get("metadata") or {}).get("resourceVersion")
        if resource_version:
            self._resource_version = resource_version

        if event_type == "BOOKMARK":
            return True
        if event_type in ("ADDED", "MODIFIED"):
            old = self.store.put(obj)
            if old is None:
                self._notify("on_add", obj)
            else:
                self._notify("on_update", old, obj)
        elif event_type == "DELETED":
            old = self.store.remove(obj)
            self._notify("on_delete", old if old is not None else obj)
        else:
            self._logger.warning(f"Ignoring unknown event type {event_type}")
        return True

    def _notify(self, method: str, *args: Snapshot) -> None:
        for listener in self._listeners:
            try:
                getattr(listener, method)(*copy.deepcopy(args))
            except Exception:
                self._logger.exception(f"Listener {listener!r} failed")


class WatchCache:
    """Local mirror of every resource kind the operator manages.

    Parameters
    ----------
    kinds : iterable of `ResourceKind`
        Kinds to mirror. Kinds that only exist on some clusters (like
        OpenShift Routes) are simply left out when unavailable; lookups for
        them then log a warning and return `None`.
    label_selector : `str`
        Selector matching the resources managed by the operator.
    watch_factory : callable, optional
        Factory of ``kubernetes.watch.Watch``-like objects.
    list_timeout : `int`, optional
        Server-side timeout, in seconds, of each initial list.
    """

    def __init__(
        self,
        kinds: Iterable[ResourceKind],
        *,
        label_selector: str,
        watch_factory: Callable[[], Any] = watch.Watch,
        list_timeout: int | None = None,
    ) -> None:
        self._informers = {
            kind.name: ResourceInformer(
                kind,
                label_selector=label_selector,
                watch_factory=watch_factory,
                list_timeout=list_timeout,
            )
            for kind in kinds
        }
        self._running = False
        self._logger = structlog.getLogger(__name__)

    @property
    def kinds(self) -> list[str]:
        return list(self._informers)

    def has_kind(self, kind: str) -> bool:
        return kind in self._informers

    def add_listener(self, kind: str, listener: ResourceListener) -> None:
        self._informers[kind].add_listener(listener)

    def start(self) -> None:
        """Sync every kind, then start following their watch streams.

        This blocks until every kind has completed its initial list, so the
        first reconciliation never sees a partial cache.

        Raises
        ------
        managedkafkaoperator.exceptions.CacheSyncError
            Raised if any kind fails its initial list. Everything started
            so far is stopped first.
        """
        for name, informer in self._informers.items():
            try:
                informer.sync()
            except Exception as e:
                self._logger.exception(f"Initial sync of {name} failed")
                self.stop()
                raise CacheSyncError(name, str(e)) from e
        for informer in self._informers.values():
            informer.start()
        self._running = True
        self._logger.info(f"Watch cache started for {', '.join(self.kinds)}")

    def stop(self) -> None:
        """Stop every watch. Safe to call after a failed or partial start."""
        self._running = False
        for informer in self._informers.values():
            try:
                informer.stop()
            except Exception:
                self._logger.exception(
                    f"Could not stop the {informer.kind.name} informer"
                )

    def is_ready(self) -> bool:
        return self._running and all(
            informer.synced for informer in self._informers.values()
        )

    def get(self, kind: str, namespace: str, name: str) -> Snapshot | None:
        """Get the last observed snapshot of a resource, or `None`.

        This never blocks and never calls the API server.
        """
        informer = self._informers.get(kind)
        if informer is None:
            self._logger.warning(
                f"{kind} are not available on this cluster; "
                f"cannot look up {namespace}/{name}"
            )
            return None
        return informer.store.get(namespace, name)

    def list(self, kind: str) -> list[Snapshot]:
        informer = self._informers.get(kind)
        if informer is None:
            self._logger.warning(f"{kind} are not available on this cluster")
            return []
        return informer.store.list()

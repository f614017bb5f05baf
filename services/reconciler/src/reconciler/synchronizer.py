"""
Resource synchronization engine for Switchyard.

Keeps one or more :class:`EntityStore` instances consistent with the
server through two channels:

* **Snapshots**: ``refresh_list(kind, scope)`` sends a list action and
  replaces the entities of that scope (the whole store when unscoped).
* **Events**: ``apply_event(name, payload)`` decodes a push event and
  applies a field-level mutation via the resource's dispatch table.

Mutating commands go through ``invoke``, which applies an optimistic
local update before the round trip and never rolls it back.

Ordering
--------
While a refresh for ``(store, scope)`` is in flight, events touching the
same store and scope are queued and replayed in arrival order once the
snapshot has been applied.  An unscoped refresh holds back every event
for its store.  A refresh that has been superseded by a newer refresh of
the same scope, or that outlives ``destroy()``, discards its result.

Resource types subclass :class:`ResourceSynchronizer` and register
stores, snapshot kinds, and event handlers in ``_configure``.
"""

from __future__ import annotations

import asyncio
import itertools
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar

import structlog
from prometheus_client import Counter, Histogram
from pydantic import BaseModel, ValidationError

from sy_common.config import get_settings
from sy_common.errors import (
    RemoteActionError,
    RequestTimeoutError,
    SyncError,
    TransportUnavailableError,
)
from sy_common.messaging.transport import SessionRef, TransportResponse, TransportSession
from sy_common.models.results import ActionResult

from reconciler.entity_store import EntityStore
from reconciler.parsing import Delta, Parser, SkipRecord
from reconciler.subscriptions import SubscriptionArena

logger = structlog.get_logger()

# ── Prometheus metrics ──
EVENTS_APPLIED = Counter(
    "reconciler_events_applied_total",
    "Push events applied to entity stores.",
    ["resource", "event"],
)
RECORDS_DROPPED = Counter(
    "reconciler_records_dropped_total",
    "Malformed event or snapshot records dropped.",
    ["resource", "source"],
)
ACTIONS = Counter(
    "reconciler_actions_total",
    "Actions dispatched to the server, by outcome.",
    ["resource", "action", "outcome"],
)
REFRESH_LATENCY = Histogram(
    "reconciler_refresh_seconds",
    "Round-trip time of list snapshots.",
    ["resource", "kind"],
)


@dataclass(frozen=True, slots=True)
class SnapshotSpec:
    """How one kind of entity is listed.

    Attributes:
        action: List action name.
        store: Store the records land in.
        parse: Record parser.
        item_event: ``Event`` value of the list-item records bundled with
            the response; ``None`` when the response fields are the record.
        scope_arg: Request argument carrying the scope; also filled into
            records that omit it.
        scope_field: Entity attribute compared against the scope.
        args: Extra fixed request arguments.
    """

    action: str
    store: str
    parse: Parser
    item_event: str | None = None
    scope_arg: str | None = None
    scope_field: str | None = None
    args: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class EventSpec:
    """Dispatch-table entry for one event name.

    Attributes:
        parse: Payload parser.
        apply: Store mutation for a decoded record.
        stores: Stores the mutation touches; used to hold the event back
            while a refresh of the same scope is in flight.
    """

    parse: Parser
    apply: Callable[[Delta], None]
    stores: tuple[str, ...]


class ResourceSynchronizer:
    """Reconciles snapshots and events for one resource type.

    Args:
        session: A ``SessionRef`` to observe, or a session / ``None`` to
            wrap in a fresh one.
        auto_refresh: Refresh everything on (re)connect.  Defaults to
            ``Settings.auto_refresh``.
        use_events: Subscribe to push events.  Defaults to
            ``Settings.use_events``.
        request_timeout_s: Bound for each round trip.  Defaults to
            ``Settings.request_timeout_s``.
    """

    resource: ClassVar[str] = "resource"

    def __init__(
        self,
        session: SessionRef | TransportSession | None = None,
        *,
        auto_refresh: bool | None = None,
        use_events: bool | None = None,
        request_timeout_s: float | None = None,
    ) -> None:
        settings = get_settings()
        self._auto_refresh = settings.auto_refresh if auto_refresh is None else auto_refresh
        self._use_events = settings.use_events if use_events is None else use_events
        self._timeout = request_timeout_s or settings.request_timeout_s

        self.stores: dict[str, EntityStore[Any]] = {}
        self.error: str | None = None
        self._snapshots: dict[str, SnapshotSpec] = {}
        self._events: dict[str, EventSpec] = {}
        self._arena = SubscriptionArena()
        self._tokens = itertools.count(1)
        self._inflight: dict[tuple[str, str | None], int] = {}
        self._deferred: list[tuple[str, EventSpec, Delta]] = []
        self._tasks: set[asyncio.Task[None]] = set()
        self._loading = 0
        self._generation = 0
        self._destroyed = False

        self._configure()

        self._session_ref = session if isinstance(session, SessionRef) else SessionRef(session)
        self._unwatch = self._session_ref.watch(self._on_session_change)
        if self._session_ref.value is not None:
            self._bind(self._session_ref.value)

    # ── registration (used by subclasses) ──

    def _configure(self) -> None:
        """Register stores, snapshot kinds, and event handlers."""

    def add_store(self, name: str, model: type[BaseModel]) -> EntityStore[Any]:
        store: EntityStore[Any] = EntityStore(model, name=name)
        self.stores[name] = store
        return store

    def add_snapshot(self, kind: str, spec: SnapshotSpec) -> None:
        self._snapshots[kind] = spec

    def on_event(
        self,
        event_name: str,
        parse: Parser,
        apply: Callable[[Delta], None],
        *,
        stores: tuple[str, ...],
    ) -> None:
        self._events[event_name] = EventSpec(parse=parse, apply=apply, stores=stores)

    # ── state ──

    @property
    def session_ref(self) -> SessionRef:
        return self._session_ref

    @property
    def is_loading(self) -> bool:
        return self._loading > 0

    @property
    def is_live(self) -> bool:
        """``True`` while bound to a session; stores keep last-known data otherwise."""
        return bool(self.stores) and all(s.is_live for s in self.stores.values())

    @property
    def event_names(self) -> list[str]:
        return list(self._events)

    @property
    def snapshot_kinds(self) -> list[str]:
        return list(self._snapshots)

    # ── snapshots ──

    async def refresh_list(self, kind: str, scope: str | None = None) -> list[Any]:
        """Fetch a snapshot of *kind* and replace the entities of *scope*.

        Args:
            kind: Registered snapshot kind.
            scope: Scope value; ``None`` replaces the whole store.

        Returns:
            The entities now in the scope.

        Raises:
            TransportUnavailableError: No connected session.
            RequestTimeoutError: The round trip exceeded the bound.
            RemoteActionError: The server rejected the list action.
        """
        spec = self._snapshot_spec(kind)
        store = self.stores[spec.store]
        args = dict(spec.args)
        if scope is not None and spec.scope_arg:
            args[spec.scope_arg] = scope
        in_scope = self._scope_predicate(spec, scope)

        session = self._connected_session()
        key = (spec.store, scope)
        token = next(self._tokens)
        self._inflight[key] = token
        generation = self._generation
        log = logger.bind(resource=self.resource, kind=kind, scope=scope)

        self._loading += 1
        started = time.perf_counter()
        try:
            response = await self._send(session, spec.action, args)
            if generation != self._generation or self._inflight.get(key) != token:
                log.info("refresh_discarded")
                return store.filter(in_scope) if in_scope else store.all()
            if response.is_error:
                raise RemoteActionError(response.message or f"{spec.action} rejected")

            records = self._decode_snapshot(spec, store, response, scope, log)
            store.replace(records, in_scope)
            self._after_snapshot(kind, scope)
            REFRESH_LATENCY.labels(resource=self.resource, kind=kind).observe(
                time.perf_counter() - started
            )
            log.debug("refresh_applied", count=len(records))
            self.error = None
            return store.filter(in_scope) if in_scope else store.all()
        except SyncError as exc:
            self.error = str(exc)
            log.warning("refresh_failed", error=str(exc))
            raise
        finally:
            self._loading -= 1
            if self._inflight.get(key) == token:
                del self._inflight[key]
            self._drain_deferred()

    async def refresh(self) -> None:
        """Refresh every snapshot kind, unscoped, in registration order."""
        for kind in self._snapshots:
            await self.refresh_list(kind)

    def _after_snapshot(self, kind: str, scope: str | None) -> None:
        """Hook for recomputing derived fields after a snapshot lands."""

    def _snapshot_spec(self, kind: str) -> SnapshotSpec:
        try:
            return self._snapshots[kind]
        except KeyError:
            raise ValueError(f"{self.resource}: unknown snapshot kind '{kind}'") from None

    @staticmethod
    def _scope_predicate(
        spec: SnapshotSpec,
        scope: str | None,
    ) -> Callable[[Any], bool] | None:
        if scope is None or spec.scope_field is None:
            return None
        scope_field = spec.scope_field
        return lambda entity: getattr(entity, scope_field) == scope

    def _decode_snapshot(
        self,
        spec: SnapshotSpec,
        store: EntityStore[Any],
        response: TransportResponse,
        scope: str | None,
        log: Any,
    ) -> dict[str, dict[str, Any]]:
        if spec.item_event is None:
            items = [response.fields]
        else:
            items = [e for e in response.events if e.get("Event") == spec.item_event]

        records: dict[str, dict[str, Any]] = {}
        for item in items:
            if scope is not None and spec.scope_arg and not item.get(spec.scope_arg):
                item = {**item, spec.scope_arg: scope}
            try:
                delta = spec.parse(item)
            except SkipRecord:
                continue
            if delta is None:
                log.warning("snapshot_record_dropped", reason="missing_identity")
                RECORDS_DROPPED.labels(resource=self.resource, source="snapshot").inc()
                continue
            try:
                store.model.model_validate({**delta.fields, "id": delta.entity_id})
            except ValidationError as exc:
                log.warning(
                    "snapshot_record_dropped",
                    reason="invalid",
                    entity_id=delta.entity_id,
                    error=str(exc),
                )
                RECORDS_DROPPED.labels(resource=self.resource, source="snapshot").inc()
                continue
            records[delta.entity_id] = delta.fields
        return records

    # ── events ──

    def apply_event(self, event_name: str, payload: Mapping[str, str]) -> None:
        """Decode and apply one push event.  Never raises, never blocks."""
        spec = self._events.get(event_name)
        if spec is None:
            return
        try:
            delta = spec.parse(payload)
        except SkipRecord:
            return
        if delta is None:
            logger.warning(
                "event_dropped",
                resource=self.resource,
                event_name=event_name,
                reason="missing_identity",
            )
            RECORDS_DROPPED.labels(resource=self.resource, source="event").inc()
            return

        if self._is_held_back(spec, delta):
            self._deferred.append((event_name, spec, delta))
            logger.debug(
                "event_deferred",
                resource=self.resource,
                event_name=event_name,
                entity_id=delta.entity_id,
            )
            return
        self._apply(event_name, spec, delta)

    def _apply(self, event_name: str, spec: EventSpec, delta: Delta) -> None:
        try:
            spec.apply(delta)
        except ValidationError as exc:
            logger.warning(
                "event_dropped",
                resource=self.resource,
                event_name=event_name,
                reason="invalid",
                entity_id=delta.entity_id,
                error=str(exc),
            )
            RECORDS_DROPPED.labels(resource=self.resource, source="event").inc()
            return
        EVENTS_APPLIED.labels(resource=self.resource, event=event_name).inc()

    def _is_held_back(self, spec: EventSpec, delta: Delta) -> bool:
        for store in spec.stores:
            if (store, None) in self._inflight:
                return True
            if delta.scope is not None and (store, delta.scope) in self._inflight:
                return True
        return False

    def _drain_deferred(self) -> None:
        if not self._deferred:
            return
        pending, self._deferred = self._deferred, []
        for event_name, spec, delta in pending:
            if self._is_held_back(spec, delta):
                self._deferred.append((event_name, spec, delta))
            else:
                self._apply(event_name, spec, delta)

    # ── actions ──

    async def invoke(
        self,
        action: str,
        args: Mapping[str, str],
        *,
        target_id: str,
        optimistic: Callable[[], None] | None = None,
    ) -> ActionResult:
        """Send a mutating action, applying *optimistic* locally first.

        A server rejection resolves to an unsuccessful ``ActionResult``;
        the optimistic change is kept until the next refresh.

        Raises:
            TransportUnavailableError: No connected session; store untouched.
            RequestTimeoutError: The round trip exceeded the bound.
        """
        session = self._connected_session()
        log = logger.bind(resource=self.resource, action=action, target_id=target_id)

        if optimistic is not None:
            optimistic()

        try:
            response = await self._send(session, action, args)
        except RemoteActionError as exc:
            return self._rejected(action, target_id, str(exc) or f"{action} rejected", log)
        except RequestTimeoutError as exc:
            self.error = str(exc)
            ACTIONS.labels(resource=self.resource, action=action, outcome="timeout").inc()
            log.warning("action_timeout", timeout_s=self._timeout)
            raise

        if response.is_error:
            return self._rejected(action, target_id, response.message or f"{action} rejected", log)

        self.error = None
        ACTIONS.labels(resource=self.resource, action=action, outcome="success").inc()
        log.debug("action_succeeded")
        return ActionResult(success=True, id=target_id)

    def _rejected(self, action: str, target_id: str, message: str, log: Any) -> ActionResult:
        self.error = message
        ACTIONS.labels(resource=self.resource, action=action, outcome="rejected").inc()
        log.warning("action_rejected_local_state_may_diverge", error=message)
        return ActionResult(success=False, id=target_id, error=message)

    # ── transport ──

    def _connected_session(self) -> TransportSession:
        session = self._session_ref.value
        if self._destroyed or session is None or not session.is_connected():
            raise TransportUnavailableError(f"{self.resource}: no connected session")
        return session

    async def _send(
        self,
        session: TransportSession,
        action: str,
        args: Mapping[str, str],
    ) -> TransportResponse:
        try:
            return await asyncio.wait_for(
                session.send_request(action, dict(args)),
                timeout=self._timeout,
            )
        except TimeoutError:
            raise RequestTimeoutError(action, self._timeout) from None

    # ── connection lifecycle ──

    def _on_session_change(
        self,
        new: TransportSession | None,
        old: TransportSession | None,
    ) -> None:
        self._unbind()
        if new is None:
            logger.info("session_lost_keeping_last_known_state", resource=self.resource)
            return
        self._bind(new)

    def _bind(self, session: TransportSession) -> None:
        if self._use_events:
            for event_name in self._events:
                self._arena.add(session.subscribe(event_name, self._handler_for(event_name)))
        self._set_live(True)
        logger.info(
            "session_bound",
            resource=self.resource,
            subscriptions=len(self._arena),
        )
        if self._auto_refresh:
            self._schedule_refresh()

    def _unbind(self) -> None:
        self._arena.close()
        self._set_live(False)

    def _handler_for(self, event_name: str) -> Callable[[dict[str, str]], None]:
        def _handler(payload: dict[str, str]) -> None:
            self.apply_event(event_name, payload)

        return _handler

    def _set_live(self, live: bool) -> None:
        for store in self.stores.values():
            store.is_live = live

    def _schedule_refresh(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("auto_refresh_skipped", resource=self.resource, reason="no_running_loop")
            return
        task = loop.create_task(self._auto_refresh_task(), name=f"refresh-{self.resource}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _auto_refresh_task(self) -> None:
        try:
            await self.refresh()
        except SyncError as exc:
            logger.error("auto_refresh_failed", resource=self.resource, error=str(exc))

    async def wait_idle(self) -> None:
        """Wait for background refreshes started by (re)connection."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def destroy(self, *, clear: bool = False) -> None:
        """Stop all subscriptions and discard in-flight refresh results.

        Args:
            clear: Also empty every store.
        """
        self._destroyed = True
        self._generation += 1
        self._unwatch()
        self._unbind()
        for task in list(self._tasks):
            task.cancel()
        self._deferred.clear()
        self._inflight.clear()
        if clear:
            for store in self.stores.values():
                store.clear()
        logger.info("synchronizer_destroyed", resource=self.resource, cleared=clear)

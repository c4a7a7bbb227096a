"""
Scope-aware instantiation engine.

Build phase (single writer, inside __init__):
  duplicate check -> admission -> hard-dependency check -> resolved order
  -> eager construction of non-lazy singletons, in order.

Serve phase (many readers):
  singletons are read from a lock-free LookupCache; a miss goes through a
  per-id single-flight guard so each singleton is constructed exactly once.
"""

import logging
import time
from concurrent.futures import Future
from datetime import timedelta
from functools import partial
from threading import Lock, get_ident
from typing import Any, Callable, Iterable, Optional

from .cache import MISSING, LookupCache, WorkerCache
from .conditions import Environment, admit
from .descriptors import ComponentDescriptor, Marker, Scope
from .events import ContainerClosedEvent, ContainerEvent, ContainerStartedEvent
from .exceptions import (
    AmbiguousComponentError,
    ContainerClosedError,
    CycleDetectedError,
    DuplicateRegistrationError,
    NotFoundError,
    ScopeNotActiveError,
    TeardownError,
)
from .graph import ResolvedOrder, check_dependencies, resolve
from .scopes import ComponentScope
from .teardown import TeardownCoordinator

logger = logging.getLogger(__name__)


class _Flight:
    """
    An in-progress singleton construction; waiters block on the future.
    """
    __slots__ = ('owner', 'future')

    def __init__(self, owner: int):
        self.owner = owner
        self.future: Future = Future()


def _check_duplicates(descriptors: list[ComponentDescriptor]) -> None:
    seen = set()
    for descriptor in descriptors:
        if descriptor.id in seen:
            raise DuplicateRegistrationError(descriptor.id)
        seen.add(descriptor.id)


class Container:
    """
    Owns the admitted descriptors and their resolved order, creates instances
    per scope and serves lookups.

    Key methods:
      - get(id) / try_get(id)  -> instance
      - get_all(type_or_tag)   -> list of instances
      - get_provider(id)       -> zero-argument callable deferring get(id)
      - create_scope(scope)    -> ComponentScope for request/session components
      - close()                -> reverse-order teardown, idempotent
    """

    def __init__(
        self,
        descriptors: Iterable[ComponentDescriptor],
        environment: Optional[Environment] = None,
        listeners: Iterable[Callable[[ContainerEvent], Any]] = ()
    ):
        self._closed = False
        self._close_lock = Lock()
        self._listeners = list(listeners)
        self._environment = environment if environment is not None else Environment.from_os()

        descriptors = list(descriptors)
        _check_duplicates(descriptors)

        admitted, excluded = admit(descriptors, self._environment)
        self._excluded_ids = tuple(excluded)

        check_dependencies(admitted, excluded)
        self._order = resolve(admitted)

        self._admitted: dict[str, ComponentDescriptor] = {d.id: d for d in admitted}
        self._ordered = [self._admitted[cid] for cid in self._order]

        self._singletons = LookupCache(len(self._admitted))
        self._guards = {
            d.id: Lock() for d in admitted if d.scope is Scope.Singleton
        }
        self._in_flight: dict[str, _Flight] = {}
        self._teardown = TeardownCoordinator(self._admitted)
        self._started_at = time.monotonic()

        self._start()

    def _start(self) -> None:
        """
        Construct every non-lazy singleton in resolved order.
        """
        eager = [
            d for d in self._ordered
            if d.scope is Scope.Singleton and not d.lazy
        ]
        try:
            for descriptor in eager:
                self._get_singleton(descriptor)
        except Exception as e:
            logger.error('Container startup failed: %s', e)
            self._abort_startup()
            raise

        logger.info(
            'Container started: %d admitted, %d excluded, %d singleton(s) constructed',
            len(self._admitted), len(self._excluded_ids), len(self._singletons))
        self._publish(ContainerStartedEvent(self, len(self._singletons)))

    def _abort_startup(self) -> None:
        # A partially-built container is never handed out; release what was built
        self._closed = True
        instances = dict(self._singletons.items())
        _, failures = self._teardown.teardown(self._order.reversed(), instances)
        for failure in failures:
            logger.warning('Teardown after failed startup: %r', failure)
        self._singletons.clear()

    # Lookups

    def get(self, component_id: str) -> Any:
        """
        Return the instance for an admitted id, constructing it if needed.
        """
        self._check_not_closed()
        instance = self._singletons.get(component_id)
        if instance is not MISSING:
            return instance

        descriptor = self._admitted.get(component_id)
        if descriptor is None:
            raise NotFoundError(component_id)
        return self._get_instance(descriptor)

    def try_get(self, component_id: str) -> Optional[Any]:
        """
        Like get(), but returns None for unknown ids and after close().
        """
        if self._closed:
            return None
        descriptor = self._admitted.get(component_id)
        if descriptor is None:
            return None
        return self._get_instance(descriptor)

    def get_all(self, marker: Marker) -> list:
        """
        Instances of every admitted component of a type (class) or with a tag (string),
        in resolved order. Request/session components are only served by a scope.
        """
        self._check_not_closed()
        return [
            self._get_instance(d) for d in self._ordered
            if d.matches(marker) and not d.scope.is_external
        ]

    def get_by_type(self, component_type: type) -> Any:
        """
        The single admitted component whose type is (a subclass of) component_type.
        """
        self._check_not_closed()
        candidates = [d for d in self._ordered if d.provides(component_type)]
        if not candidates:
            raise NotFoundError(component_type)
        if len(candidates) > 1:
            raise AmbiguousComponentError(component_type, [d.id for d in candidates])
        return self._get_instance(candidates[0])

    def get_provider(self, component_id: str) -> Callable[[], Any]:
        """
        Zero-argument callable performing get(component_id) when invoked.
        """
        self._check_not_closed()
        if component_id not in self._admitted:
            raise NotFoundError(component_id)
        return partial(self.get, component_id)

    def contains(self, component_id: str) -> bool:
        """
        True if component_id is admitted. A closed container contains nothing.
        """
        return not self._closed and component_id in self._admitted

    def __contains__(self, component_id: str) -> bool:
        return self.contains(component_id)

    def worker(self) -> WorkerCache:
        """
        A per-worker front cache; hold one per thread and pass it along the call path.
        """
        self._check_not_closed()
        return WorkerCache(self._singletons, self.get, guard=self._check_not_closed)

    def create_scope(self, scope: Scope = Scope.Request) -> ComponentScope:
        """Begin a new request or session scope."""
        self._check_not_closed()
        return ComponentScope(self, scope)

    # Resolver protocol used by ComponentDescriptor.activate

    def resolve_dependency(self, dependency_id: str, requested_by: ComponentDescriptor) -> Any:
        descriptor = self._admitted.get(dependency_id)
        if descriptor is None:
            if requested_by.is_optional(dependency_id):
                return None
            raise NotFoundError(dependency_id, requested_by.id)
        return self._get_instance(descriptor)

    def ensure_constructed(self, dependency_id: str, requested_by: ComponentDescriptor) -> None:
        descriptor = self._admitted.get(dependency_id)
        if descriptor is None:
            if requested_by.is_optional(dependency_id):
                return
            raise NotFoundError(dependency_id, requested_by.id)
        if descriptor.scope is Scope.Singleton:
            self._get_singleton(descriptor)
        elif descriptor.scope.is_external:
            raise ScopeNotActiveError(descriptor.id, descriptor.scope.value)

    # Instantiation

    def _get_instance(self, descriptor: ComponentDescriptor) -> Any:
        scope = descriptor.scope
        if scope is Scope.Singleton:
            return self._get_singleton(descriptor)
        if scope is Scope.Prototype:
            # No shared state beyond read-only dependency lookups
            return descriptor.activate(self)
        raise ScopeNotActiveError(descriptor.id, scope.value)

    def _get_singleton(self, descriptor: ComponentDescriptor) -> Any:
        component_id = descriptor.id

        # Fast path: published singletons never change
        instance = self._singletons.get(component_id)
        if instance is not MISSING:
            return instance

        me = get_ident()
        guard = self._guards[component_id]
        with guard:
            instance = self._singletons.get(component_id)
            if instance is not MISSING:
                return instance

            flight = self._in_flight.get(component_id)
            leader = flight is None
            if leader:
                flight = _Flight(me)
                self._in_flight[component_id] = flight

        if not leader:
            if flight.owner == me:
                # Only reachable if the static cycle check was bypassed
                raise CycleDetectedError(
                    [component_id, component_id],
                    f"'{component_id}' was requested again while under construction")
            logger.debug("Waiting on in-flight construction of '%s'", component_id)
            return flight.future.result()

        logger.debug("Constructing singleton '%s'", component_id)
        try:
            instance = descriptor.activate(self)
        except BaseException as e:
            with guard:
                self._in_flight.pop(component_id, None)
            flight.future.set_exception(e)
            raise

        with guard:
            if self._closed:
                logger.warning(
                    "Singleton '%s' finished construction after close; it will not be cached",
                    component_id)
            else:
                self._singletons.put(component_id, instance)
            self._in_flight.pop(component_id, None)
        flight.future.set_result(instance)
        return instance

    # Teardown

    def close(self) -> None:
        """
        Tear down constructed singletons in reverse resolved order.

        Idempotent: only the first call does anything. Hook failures do not
        stop the remaining hooks; they are raised together as TeardownError
        once teardown has finished.
        """
        with self._close_lock:
            if self._closed:
                return
            self._closed = True

        instances = dict(self._singletons.items())
        destroyed, failures = self._teardown.teardown(self._order.reversed(), instances)
        self._singletons.clear()

        uptime = timedelta(seconds=time.monotonic() - self._started_at)
        logger.info('Container closed: %d singleton(s) destroyed, %d teardown failure(s)',
                    destroyed, len(failures))
        self._publish(ContainerClosedEvent(self, uptime, destroyed))

        if failures:
            raise TeardownError(failures)

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> 'Container':
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def _check_not_closed(self) -> None:
        if self._closed:
            raise ContainerClosedError()

    # Events

    def add_listener(self, listener: Callable[[ContainerEvent], Any]) -> None:
        self._listeners.append(listener)

    def _publish(self, event: ContainerEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.warning('Listener %r failed on %r: %s', listener, event, e)

    # Introspection

    @property
    def resolved_order(self) -> ResolvedOrder:
        return self._order

    @property
    def environment(self) -> Environment:
        return self._environment

    def descriptor(self, component_id: str) -> ComponentDescriptor:
        descriptor = self._admitted.get(component_id)
        if descriptor is None:
            raise NotFoundError(component_id)
        return descriptor

    def excluded_ids(self) -> list:
        return list(self._excluded_ids)

    def was_excluded(self, component_id: str) -> bool:
        return component_id in self._excluded_ids

    def active_profiles(self) -> frozenset:
        return self._environment.active_profiles

    def is_profile_active(self, profile: str) -> bool:
        return self._environment.is_profile_active(profile)

    def is_constructed(self, component_id: str) -> bool:
        return component_id in self._singletons

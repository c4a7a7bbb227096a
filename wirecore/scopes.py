"""
Externally-scoped lifetimes (request, session).
"""

import logging
from functools import partial
from threading import RLock
from typing import Any, Callable, Optional

from .descriptors import ComponentDescriptor, Marker, Scope
from .exceptions import ContainerClosedError, NotFoundError, ScopeNotActiveError, TeardownError
from .teardown import TeardownCoordinator

logger = logging.getLogger(__name__)


class ComponentScope:
    """
    Provides scoped resolution: Singleton -> delegated to the container,
    Prototype -> new each call, components of this scope's kind -> one per
    scope instance. A request scope opened inside a session scope finds
    session components in its parent.
    """

    def __init__(self, container, scope: Scope = Scope.Request, parent: Optional['ComponentScope'] = None):
        if not scope.is_external:
            raise ValueError(f'{scope.value} is not an external scope')
        self._container = container
        self._scope = scope
        self._parent = parent
        self._instances: dict[str, Any] = {}
        self._creation_order: list[str] = []
        self._lock = RLock()
        self._closed = False

    def __enter__(self) -> 'ComponentScope':
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    @property
    def scope(self) -> Scope:
        return self._scope

    @property
    def closed(self) -> bool:
        return self._closed

    def create_scope(self, scope: Scope = Scope.Request) -> 'ComponentScope':
        """Open a nested scope that falls back to this one."""
        self._check_open()
        return ComponentScope(self._container, scope, parent=self)

    def get(self, component_id: str) -> Any:
        self._check_open()
        descriptor = self._container._admitted.get(component_id)
        if descriptor is None:
            raise NotFoundError(component_id)
        return self._get_instance(descriptor)

    def try_get(self, component_id: str) -> Optional[Any]:
        if self._closed or self._container.closed:
            return None
        descriptor = self._container._admitted.get(component_id)
        if descriptor is None:
            return None
        return self._get_instance(descriptor)

    def get_all(self, marker: Marker) -> list:
        """
        Matching instances in resolved order. Components of a scope kind
        with no open owner in this chain (e.g. session components inside a
        bare request scope) are skipped.
        """
        self._check_open()
        return [
            self._get_instance(d) for d in self._container._ordered
            if d.matches(marker) and self._is_reachable(d)
        ]

    def _is_reachable(self, descriptor: ComponentDescriptor) -> bool:
        if not descriptor.scope.is_external:
            return True
        return self._owner_of(descriptor.scope) is not None

    def get_provider(self, component_id: str) -> Callable[[], Any]:
        self._check_open()
        if not self._container.contains(component_id):
            raise NotFoundError(component_id)
        return partial(self.get, component_id)

    def resolve_dependency(self, dependency_id: str, requested_by: ComponentDescriptor) -> Any:
        descriptor = self._container._admitted.get(dependency_id)
        if descriptor is None:
            if requested_by.is_optional(dependency_id):
                return None
            raise NotFoundError(dependency_id, requested_by.id)
        return self._get_instance(descriptor)

    def ensure_constructed(self, dependency_id: str, requested_by: ComponentDescriptor) -> None:
        descriptor = self._container._admitted.get(dependency_id)
        if descriptor is None:
            if not requested_by.is_optional(dependency_id):
                raise NotFoundError(dependency_id, requested_by.id)
            return
        if descriptor.scope is not Scope.Prototype:
            self._get_instance(descriptor)

    def _owner_of(self, scope: Scope) -> Optional['ComponentScope']:
        current = self
        while current is not None:
            if current._scope is scope:
                return current
            current = current._parent
        return None

    def _get_instance(self, descriptor: ComponentDescriptor) -> Any:
        scope = descriptor.scope

        # Singleton always via the container
        if scope is Scope.Singleton:
            return self._container._get_singleton(descriptor)

        # Prototype: new each call, may depend on this scope's components
        if scope is Scope.Prototype:
            return descriptor.activate(self)

        owner = self._owner_of(scope)
        if owner is None:
            raise ScopeNotActiveError(descriptor.id, scope.value)
        return owner._get_scoped(descriptor)

    def _get_scoped(self, descriptor: ComponentDescriptor) -> Any:
        with self._lock:
            if descriptor.id in self._instances:
                return self._instances[descriptor.id]

            logger.debug("Constructing %s-scoped '%s'", self._scope.value, descriptor.id)
            instance = descriptor.activate(self)
            self._instances[descriptor.id] = instance
            self._creation_order.append(descriptor.id)
            return instance

    def close(self) -> None:
        """
        Tear down this scope's instances in reverse creation order. Idempotent.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            order = list(reversed(self._creation_order))
            instances = dict(self._instances)
            self._instances.clear()
            self._creation_order.clear()

        coordinator = TeardownCoordinator(self._container._admitted)
        _, failures = coordinator.teardown(order, instances)
        if failures:
            raise TeardownError(failures)

    def _check_open(self) -> None:
        if self._closed:
            raise ContainerClosedError('Scope has been closed')
        if self._container.closed:
            raise ContainerClosedError()

"""
ComponentCollection: collects descriptors before building a Container.
"""

import inspect
import logging
from dataclasses import replace
from typing import Any, Callable, Iterable, Optional

from .conditions import Environment
from .container import Container
from .descriptors import ComponentDescriptor, Hook, Scope, get_signature

logger = logging.getLogger(__name__)


def get_factory_dependencies(factory: Callable[..., Any]) -> tuple[tuple, frozenset]:
    """
    Inspect a factory signature to discover its dependency ids.

    Each positional parameter name is a component id. Parameters with a
    default are soft dependencies. Returns (ids, optional_ids).
    """
    try:
        params = get_signature(factory).parameters
    except (TypeError, ValueError):
        # Builtins and some C callables expose no signature
        return (), frozenset()

    ids = []
    optional = set()
    for name, param in params.items():
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue
        if param.kind is param.KEYWORD_ONLY:
            if param.default is param.empty:
                raise TypeError(
                    f"Factory parameter '{name}' is keyword-only; dependencies are passed positionally")
            continue
        ids.append(name)
        if param.default is not param.empty:
            optional.add(name)
    return tuple(ids), frozenset(optional)


class ComponentCollection:
    """
    Collects component registrations before building a Container.

    Registration order is kept; duplicates are reported when the container
    is built, not here.
    """

    __slots__ = ('_descriptors',)

    def __init__(self):
        self._descriptors: list[ComponentDescriptor] = []

    def add(
        self,
        component_id: str,
        factory: Callable[..., Any],
        scope: Scope = Scope.Singleton,
        *,
        dependencies: Optional[Iterable[str]] = None,
        optional: Iterable[str] = (),
        depends_on: Iterable[str] = (),
        init: Iterable[Hook] = (),
        destroy: Iterable[Hook] = (),
        conditions: Iterable[Any] = (),
        lazy: bool = False,
        component_type: Optional[type] = None,
        tags: Iterable[str] = ()
    ) -> ComponentDescriptor:
        """
        Register a component. Dependencies default to the factory's parameter names.
        """
        if dependencies is None:
            implicit, inferred_optional = get_factory_dependencies(factory)
        else:
            implicit, inferred_optional = tuple(dependencies), frozenset()

        if component_type is None and inspect.isclass(factory):
            component_type = factory

        descriptor = ComponentDescriptor(
            id=component_id,
            factory=factory,
            scope=scope,
            explicit_dependency_ids=tuple(depends_on),
            implicit_dependency_ids=implicit,
            optional_dependency_ids=inferred_optional | frozenset(optional),
            init_hooks=tuple(init),
            teardown_hooks=tuple(destroy),
            admission_predicates=tuple(conditions),
            lazy=lazy,
            component_type=component_type,
            tags=frozenset(tags))
        return self.add_descriptor(descriptor)

    def add_descriptor(self, descriptor: ComponentDescriptor) -> ComponentDescriptor:
        self._descriptors.append(descriptor)
        logger.debug("Registered '%s' (%s)", descriptor.id, descriptor.scope.value)
        return descriptor

    def add_singleton(self, component_id: str, factory: Callable[..., Any], **kwargs) -> ComponentDescriptor:
        """Register a singleton component."""
        return self.add(component_id, factory, Scope.Singleton, **kwargs)

    def add_prototype(self, component_id: str, factory: Callable[..., Any], **kwargs) -> ComponentDescriptor:
        """Register a prototype component."""
        return self.add(component_id, factory, Scope.Prototype, **kwargs)

    def add_scoped(
        self,
        component_id: str,
        factory: Callable[..., Any],
        scope: Scope = Scope.Request,
        **kwargs
    ) -> ComponentDescriptor:
        """Register a request- or session-scoped component."""
        if not scope.is_external:
            raise ValueError(f'add_scoped requires a request or session scope, got {scope.value}')
        return self.add(component_id, factory, scope, **kwargs)

    def add_instance(self, component_id: str, instance: Any, **kwargs) -> ComponentDescriptor:
        """
        Register a pre-built instance as a singleton.
        """
        kwargs.setdefault('component_type', type(instance))
        return self.add(component_id, lambda: instance, Scope.Singleton, dependencies=(), **kwargs)

    def decorate(self, component_id: str, *decorators: Callable[[Callable[..., Any]], Callable[..., Any]]) -> None:
        """
        Wrap the factory of every registration of component_id with decorators.
        """
        found = False
        for index, descriptor in enumerate(self._descriptors):
            if descriptor.id == component_id:
                self._descriptors[index] = descriptor.decorate(*decorators)
                found = True
        if not found:
            raise KeyError(f"No registration for '{component_id}' to decorate")

    def update(self, component_id: str, **changes) -> None:
        """
        Replace fields (e.g. lazy=True) on an existing registration.
        """
        for index, descriptor in enumerate(self._descriptors):
            if descriptor.id == component_id:
                self._descriptors[index] = replace(descriptor, **changes)
                return
        raise KeyError(f"No registration for '{component_id}'")

    def get_descriptors(self) -> list[ComponentDescriptor]:
        """Expose the registered descriptors in registration order."""
        return list(self._descriptors)

    def __len__(self) -> int:
        return len(self._descriptors)

    def build_container(self, environment: Optional[Environment] = None, listeners: Iterable[Any] = ()) -> Container:
        """
        Finalize registrations and return a started Container.
        """
        return Container(self._descriptors, environment=environment, listeners=listeners)

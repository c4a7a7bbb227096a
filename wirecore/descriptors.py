"""
Descriptor model: the static record each component is known by.
"""

import inspect
from dataclasses import dataclass, field, replace
from enum import Enum
from functools import lru_cache
from typing import Any, Callable, Optional, Union

from .exceptions import ConstructionError, WirecoreError

# A hook is a zero-argument callable, a callable taking the instance, or
# the name of a zero-argument method on the instance.
Hook = Union[str, Callable[..., Any]]

# Type marker (class) or tag (string)
Marker = Union[type, str]

_POSITIONAL = (
    inspect.Parameter.POSITIONAL_ONLY,
    inspect.Parameter.POSITIONAL_OR_KEYWORD,
    inspect.Parameter.VAR_POSITIONAL,
)


@lru_cache(maxsize=None)
def get_signature(fn):
    return inspect.signature(fn)


class Scope(Enum):
    """
    Supported component scopes.
    """
    Singleton = 'singleton'
    Prototype = 'prototype'
    Request = 'request'
    Session = 'session'

    @property
    def is_external(self) -> bool:
        """Request and session instances live in a ComponentScope, not the container."""
        return self in (Scope.Request, Scope.Session)


def _ordered_unique(values) -> tuple:
    seen = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return tuple(result)


@dataclass(frozen=True)
class ComponentDescriptor:
    """
    Identity, scope, dependencies, hooks and admission predicates of one component.

    Attributes:
        id:                      Stable, unique component id.
        factory:                 Called with the resolved implicit dependencies, in order.
        scope:                   Scope.Singleton (default), Prototype, Request or Session.
        explicit_dependency_ids: Ids that must be constructed first, independent of the factory.
        implicit_dependency_ids: Ids passed to the factory as positional arguments.
        optional_dependency_ids: Soft dependencies; dropped when not admitted, injected as None.
        init_hooks:              Run after the factory returns, before the instance is published.
        teardown_hooks:          Run at container close (singletons) or scope close.
        admission_predicates:    All must hold for the component to be admitted.
        lazy:                    Singletons only; skip eager construction at startup.
        component_type:          Type marker used by get_all / get_by_type / MissingComponent.
        tags:                    String markers used by get_all.
    """
    id: str
    factory: Callable[..., Any]
    scope: Scope = Scope.Singleton
    explicit_dependency_ids: tuple = ()
    implicit_dependency_ids: tuple = ()
    optional_dependency_ids: frozenset = frozenset()
    init_hooks: tuple = ()
    teardown_hooks: tuple = ()
    admission_predicates: tuple = ()
    lazy: bool = False
    component_type: Optional[type] = None
    tags: frozenset = field(default_factory=frozenset)

    def __post_init__(self):
        if not isinstance(self.id, str) or not self.id:
            raise ValueError('Component id must be a non-empty string')
        if not callable(self.factory):
            raise TypeError(f"Factory for '{self.id}' is not callable")
        if not isinstance(self.scope, Scope):
            raise TypeError(f"Invalid scope for '{self.id}': {self.scope!r}")

        # Frozen dataclass: normalize through object.__setattr__
        object.__setattr__(self, 'explicit_dependency_ids', _ordered_unique(self.explicit_dependency_ids))
        object.__setattr__(self, 'implicit_dependency_ids', tuple(self.implicit_dependency_ids))
        object.__setattr__(self, 'optional_dependency_ids', frozenset(self.optional_dependency_ids))
        object.__setattr__(self, 'init_hooks', tuple(self.init_hooks))
        object.__setattr__(self, 'teardown_hooks', tuple(self.teardown_hooks))
        object.__setattr__(self, 'admission_predicates', tuple(self.admission_predicates))
        object.__setattr__(self, 'tags', frozenset(self.tags))

    @property
    def dependency_ids(self) -> tuple:
        """Ordered union of explicit and implicit dependency ids."""
        return _ordered_unique(self.explicit_dependency_ids + self.implicit_dependency_ids)

    @property
    def hard_dependency_ids(self) -> tuple:
        return tuple(d for d in self.dependency_ids if d not in self.optional_dependency_ids)

    def is_optional(self, dependency_id: str) -> bool:
        return dependency_id in self.optional_dependency_ids

    def provides(self, target: Marker) -> bool:
        """
        True if this component satisfies an id (string) or a type.
        """
        if isinstance(target, type):
            return self.component_type is not None and issubclass(self.component_type, target)
        return self.id == target

    def matches(self, marker: Marker) -> bool:
        """
        True if this component carries a tag (string) or is of a type.
        """
        if isinstance(marker, type):
            return self.provides(marker)
        return marker in self.tags

    def decorate(self, *decorators: Callable[[Callable[..., Any]], Callable[..., Any]]) -> 'ComponentDescriptor':
        """
        Return a copy whose factory is wrapped by each decorator; the first one is outermost.
        """
        factory = compose(self.factory, *decorators)
        return replace(self, factory=factory)

    def activate(self, resolver) -> Any:
        """
        Create one instance: resolve dependencies, call the factory, run init hooks.

        The resolver (a Container or a ComponentScope) supplies dependencies
        through resolve_dependency() and ensure_constructed(). Hooks complete
        before this returns, so nothing can observe a half-initialized instance.
        """
        implicit = self.implicit_dependency_ids
        for dep_id in self.explicit_dependency_ids:
            if dep_id not in implicit:
                resolver.ensure_constructed(dep_id, self)

        args = [resolver.resolve_dependency(dep_id, self) for dep_id in implicit]

        try:
            instance = self.factory(*args)
        except WirecoreError:
            raise
        except Exception as e:
            raise ConstructionError(self.id, e) from e

        for hook in self.init_hooks:
            try:
                invoke_hook(hook, instance)
            except Exception as e:
                raise ConstructionError(self.id, e, stage=f"init hook '{hook_name(hook)}'") from e

        return instance


def compose(factory: Callable[..., Any], *decorators) -> Callable[..., Any]:
    for decorator in reversed(decorators):
        wrapped = decorator(factory)
        if not callable(wrapped):
            raise TypeError(f'Decorator {decorator!r} did not return a callable')
        factory = wrapped
    return factory


def invoke_hook(hook: Hook, instance: Any) -> Any:
    """
    Run one lifecycle hook against an instance.
    """
    if isinstance(hook, str):
        method = getattr(instance, hook, None)
        if method is None or not callable(method):
            raise AttributeError(
                f"'{type(instance).__name__}' has no callable hook method '{hook}'")
        return method()
    if takes_instance(hook):
        return hook(instance)
    return hook()


def takes_instance(hook: Callable[..., Any]) -> bool:
    """
    True if a hook callable accepts a positional argument for the instance.
    """
    try:
        try:
            signature = get_signature(hook)
        except TypeError:
            # Unhashable callables bypass the cache
            signature = inspect.signature(hook)
    except (TypeError, ValueError):
        # No introspectable signature: assume the instance-taking form
        return True
    return any(p.kind in _POSITIONAL for p in signature.parameters.values())


def hook_name(hook: Hook) -> str:
    if isinstance(hook, str):
        return hook
    return getattr(hook, '__qualname__', None) or repr(hook)


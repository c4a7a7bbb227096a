"""
wirecore – resolution and lifecycle core of a dependency-injection runtime

Provides:
- Component descriptors with singleton, prototype, request and session scopes
- Environment-driven admission (properties, profiles, capabilities, missing components)
- Deterministic dependency ordering with cycle detection
- Exactly-once singleton construction under concurrent access
- Ordered, best-effort teardown
"""

from .cache import LookupCache, WorkerCache
from .collection import ComponentCollection
from .conditions import (
    AdmissionResult,
    CapabilityPresent,
    Environment,
    MissingComponent,
    ProfileActive,
    ProfileMode,
    PropertyEquals,
    PropertyPresent,
    admit
)
from .container import Container
from .descriptors import ComponentDescriptor, Scope
from .events import ContainerClosedEvent, ContainerStartedEvent
from .exceptions import (
    AmbiguousComponentError,
    ConstructionError,
    ContainerClosedError,
    CycleDetectedError,
    DuplicateRegistrationError,
    NotFoundError,
    ScopeNotActiveError,
    TeardownError,
    UnresolvedDependencyError,
    WirecoreError
)
from .graph import DependencyGraph, ResolvedOrder, resolve
from .scopes import ComponentScope

__all__ = [
    'AdmissionResult',
    'AmbiguousComponentError',
    'CapabilityPresent',
    'ComponentCollection',
    'ComponentDescriptor',
    'ComponentScope',
    'ConstructionError',
    'Container',
    'ContainerClosedError',
    'ContainerClosedEvent',
    'ContainerStartedEvent',
    'CycleDetectedError',
    'DependencyGraph',
    'DuplicateRegistrationError',
    'Environment',
    'LookupCache',
    'MissingComponent',
    'NotFoundError',
    'ProfileActive',
    'ProfileMode',
    'PropertyEquals',
    'PropertyPresent',
    'ResolvedOrder',
    'Scope',
    'ScopeNotActiveError',
    'TeardownError',
    'UnresolvedDependencyError',
    'WirecoreError',
    'WorkerCache',
    'admit',
    'resolve'
]

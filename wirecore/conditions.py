"""
Admission filter: decides, once per container, which descriptors participate.

Predicates are a closed set of small frozen records, each answering
matches(context). A descriptor is admitted iff every one of its predicates
holds; an empty predicate list always admits.
"""

import importlib.util
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Mapping, Optional, Union

from dotenv import dotenv_values

from .descriptors import ComponentDescriptor

logger = logging.getLogger(__name__)

PROFILES_PROPERTY = 'wirecore.profiles.active'
DEFAULT_PROFILE = 'default'


def env_var_name(key: str) -> str:
    """
    'wirecore.profiles.active' -> 'WIRECORE_PROFILES_ACTIVE'
    """
    return key.replace('.', '_').replace('-', '_').upper()


def parse_profiles(value: Optional[str]) -> frozenset:
    if not value:
        return frozenset()
    return frozenset(p.strip() for p in value.split(',') if p.strip())


@dataclass(frozen=True)
class Environment:
    """
    Immutable snapshot the predicates are evaluated against.

    Attributes:
        properties:      key -> value lookup.
        active_profiles: names of the active profiles.
        capabilities:    optional capability names; when None, a capability
                         is present if a module of that name is importable.
    """
    properties: Mapping[str, str] = field(default_factory=dict)
    active_profiles: frozenset = frozenset()
    capabilities: Optional[frozenset] = None

    def __post_init__(self):
        object.__setattr__(self, 'properties', dict(self.properties))
        object.__setattr__(self, 'active_profiles', frozenset(self.active_profiles))
        if self.capabilities is not None:
            object.__setattr__(self, 'capabilities', frozenset(self.capabilities))

    @classmethod
    def from_os(
        cls,
        profiles: Optional[Iterable[str]] = None,
        env_file: Optional[Union[str, os.PathLike]] = None,
        properties: Optional[Mapping[str, str]] = None,
        capabilities: Optional[Iterable[str]] = None
    ) -> 'Environment':
        """
        Snapshot os.environ, optionally overlaid with a dotenv file and explicit properties.

        Profiles, when not given, come from the 'wirecore.profiles.active'
        property (or WIRECORE_PROFILES_ACTIVE); with neither set the
        'default' profile is active.
        """
        merged: dict = dict(os.environ)
        if env_file is not None:
            values = dotenv_values(env_file)
            merged.update({k: v for k, v in values.items() if v is not None})
        if properties:
            merged.update(properties)

        environment = cls(
            properties=merged,
            capabilities=frozenset(capabilities) if capabilities is not None else None)

        if profiles is None:
            active = parse_profiles(environment.get_property(PROFILES_PROPERTY))
            if not active:
                active = frozenset([DEFAULT_PROFILE])
        else:
            active = frozenset(profiles)

        logger.debug('Active profiles: %s', sorted(active))
        return cls(properties=merged, active_profiles=active, capabilities=environment.capabilities)

    def get_property(self, key: str) -> Optional[str]:
        value = self.properties.get(key)
        if value is None:
            value = self.properties.get(env_var_name(key))
        return value

    def has_property(self, key: str) -> bool:
        return self.get_property(key) is not None

    def is_profile_active(self, name: str) -> bool:
        return name in self.active_profiles

    def has_capability(self, name: str) -> bool:
        if self.capabilities is not None:
            return name in self.capabilities
        try:
            return importlib.util.find_spec(name) is not None
        except (ImportError, ValueError):
            # find_spec imports parent packages, which may themselves be missing
            return False


class AdmissionContext:
    """
    What a predicate can see: the environment and the admittable candidates.
    """

    def __init__(self, environment: Environment, descriptor: ComponentDescriptor,
                 candidates: Iterable[ComponentDescriptor] = ()):
        self.environment = environment
        self.descriptor = descriptor
        self._candidates = list(candidates)

    def contains(self, target) -> bool:
        """True if another candidate satisfies an id or type."""
        return any(
            c.provides(target) for c in self._candidates
            if c is not self.descriptor)


class ProfileMode(Enum):
    Any = 'any'
    All = 'all'


@dataclass(frozen=True)
class PropertyEquals:
    key: str
    expected_value: str
    match_if_absent: bool = False

    def matches(self, context: AdmissionContext) -> bool:
        value = context.environment.get_property(self.key)
        if value is None:
            return self.match_if_absent
        return value == self.expected_value


@dataclass(frozen=True)
class PropertyPresent:
    key: str

    def matches(self, context: AdmissionContext) -> bool:
        return context.environment.has_property(self.key)


@dataclass(frozen=True)
class CapabilityPresent:
    name: str

    def matches(self, context: AdmissionContext) -> bool:
        return context.environment.has_capability(self.name)


@dataclass(frozen=True)
class MissingComponent:
    """
    Holds iff no other admittable component provides the id (string) or type.
    """
    target: Union[str, type]

    # Evaluated in the second admission pass, against the first-pass survivors
    deferred = True

    def matches(self, context: AdmissionContext) -> bool:
        return not context.contains(self.target)


@dataclass(frozen=True)
class ProfileActive:
    """
    Profile expression. A name prefixed with '!' means "not active".

    Negated names must all be inactive. Positive names must have at least one
    active (ProfileMode.Any) or all active (ProfileMode.All).
    """
    names: tuple
    mode: ProfileMode = ProfileMode.Any

    def __post_init__(self):
        if isinstance(self.names, str):
            object.__setattr__(self, 'names', (self.names,))
        else:
            object.__setattr__(self, 'names', tuple(self.names))

    def matches(self, context: AdmissionContext) -> bool:
        environment = context.environment
        positive = [n for n in self.names if not n.startswith('!')]
        negated = [n[1:] for n in self.names if n.startswith('!')]

        if any(environment.is_profile_active(n) for n in negated):
            return False
        if not positive:
            return True
        if self.mode is ProfileMode.All:
            return all(environment.is_profile_active(n) for n in positive)
        return any(environment.is_profile_active(n) for n in positive)


Predicate = Union[PropertyEquals, PropertyPresent, CapabilityPresent, MissingComponent, ProfileActive]


def _is_deferred(predicate) -> bool:
    return getattr(predicate, 'deferred', False)


def _evaluate(descriptor: ComponentDescriptor, context: AdmissionContext, deferred: bool) -> bool:
    for predicate in descriptor.admission_predicates:
        if _is_deferred(predicate) != deferred:
            continue
        if not predicate.matches(context):
            logger.debug("Excluding '%s': %r did not match", descriptor.id, predicate)
            return False
    return True


@dataclass
class AdmissionResult:
    admitted: list
    excluded_ids: list

    def __iter__(self):
        # Allows: admitted, excluded = admit(...)
        return iter((self.admitted, self.excluded_ids))


def admit(descriptors: Iterable[ComponentDescriptor], environment: Environment) -> AdmissionResult:
    """
    Split descriptors into the admitted list and the excluded ids.

    Environment predicates run first. MissingComponent predicates run in a
    second pass against the components that survived the first, so a
    fallback is dropped whenever any other survivor provides the target.
    Registration order is preserved in both outputs.
    """
    descriptors = list(descriptors)

    survivors = [
        d for d in descriptors
        if _evaluate(d, AdmissionContext(environment, d), deferred=False)
    ]

    admitted = [
        d for d in survivors
        if _evaluate(d, AdmissionContext(environment, d, survivors), deferred=True)
    ]

    admitted_ids = {d.id for d in admitted}
    excluded = [d.id for d in descriptors if d.id not in admitted_ids]

    if excluded:
        logger.info('Excluded %d component(s) by admission: %s', len(excluded), ', '.join(excluded))
    return AdmissionResult(admitted=admitted, excluded_ids=excluded)

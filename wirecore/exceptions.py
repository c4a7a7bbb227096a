"""
Error taxonomy for the container.

Build-time errors (unresolved, duplicate, cycle, eager construction) abort
container construction. Lookup errors are recoverable by the caller.
Teardown errors are collected and raised once after every hook has run.
"""

from typing import Any, Optional


class WirecoreError(Exception):
    """
    Base class for every error raised by wirecore.
    """


class UnresolvedDependencyError(WirecoreError):
    def __init__(self, component_id: str, dependency_id: str, reason: str = 'is not registered'):
        self.component_id = component_id
        self.dependency_id = dependency_id
        super().__init__(
            f"Component '{component_id}' depends on '{dependency_id}', which {reason}")


class DuplicateRegistrationError(WirecoreError):
    def __init__(self, component_id: str):
        self.component_id = component_id
        super().__init__(f"Component '{component_id}' is registered more than once")


class CycleDetectedError(WirecoreError):
    """
    Raised when admitted components form a dependency cycle.

    Attributes:
        path: the cycle witness, first and last entries are the same id.
    """

    def __init__(self, path: list[str], message: Optional[str] = None):
        self.path = list(path)
        super().__init__(message or f"Cyclic dependency detected: {' -> '.join(self.path)}")


class ConstructionError(WirecoreError):
    """
    A factory or init hook failed while creating a component.
    """

    def __init__(self, component_id: str, cause: BaseException, stage: str = 'factory'):
        self.component_id = component_id
        self.cause = cause
        self.stage = stage
        super().__init__(
            f"Failed to construct '{component_id}' ({stage}): "
            f"{type(cause).__name__}: {cause}")


class ContainerClosedError(WirecoreError):
    def __init__(self, message: str = 'Container has been closed'):
        super().__init__(message)


class NotFoundError(WirecoreError, LookupError):
    def __init__(self, target: Any, requested_by: Optional[str] = None):
        self.target = target
        self.requested_by = requested_by
        name = getattr(target, '__name__', target)
        if requested_by:
            message = f"No admitted component found for '{name}' while constructing '{requested_by}'"
        else:
            message = f"No admitted component found for '{name}'"
        super().__init__(message)

    def __str__(self) -> str:
        # LookupError would otherwise render the repr of the first arg
        return self.args[0]


class AmbiguousComponentError(WirecoreError, LookupError):
    def __init__(self, target: type, candidates: list[str]):
        self.target = target
        self.candidates = list(candidates)
        super().__init__(
            f"Expected one component of type '{target.__name__}', "
            f"found {len(self.candidates)}: {', '.join(self.candidates)}")

    def __str__(self) -> str:
        return self.args[0]


class ScopeNotActiveError(WirecoreError):
    def __init__(self, component_id: str, scope_name: str):
        self.component_id = component_id
        self.scope_name = scope_name
        super().__init__(
            f"Component '{component_id}' has {scope_name} scope and requires an active "
            f"{scope_name} scope. Call container.create_scope().")


class TeardownFailure:
    """
    One failed teardown hook.
    """

    __slots__ = ('component_id', 'hook', 'error')

    def __init__(self, component_id: str, hook: Any, error: BaseException):
        self.component_id = component_id
        self.hook = hook
        self.error = error

    def __repr__(self) -> str:
        return f"TeardownFailure({self.component_id!r}, {type(self.error).__name__}: {self.error})"


class TeardownError(WirecoreError):
    """
    Aggregates every teardown hook failure from a single close().
    """

    def __init__(self, failures: list[TeardownFailure]):
        self.failures = list(failures)
        ids = ', '.join(f.component_id for f in self.failures)
        super().__init__(f"{len(self.failures)} teardown hook(s) failed: {ids}")

    @property
    def errors(self) -> list[BaseException]:
        return [f.error for f in self.failures]

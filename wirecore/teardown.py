"""
Teardown coordination: best-effort, ordered invocation of teardown hooks.
"""

import logging
from typing import Any, Iterable, Mapping

from .descriptors import ComponentDescriptor, hook_name, invoke_hook
from .exceptions import TeardownFailure

logger = logging.getLogger(__name__)


class TeardownCoordinator:
    """
    Runs teardown hooks for constructed instances in a given order.

    A failing hook is recorded and logged; the remaining hooks of the same
    component and of every other component still run. Failures are surfaced
    once, together; the caller raises them as a TeardownError.
    """

    def __init__(self, descriptors: Mapping[str, ComponentDescriptor]):
        self._descriptors = descriptors

    def teardown(self, ordered_ids: Iterable[str], instances: Mapping[str, Any]) -> tuple[int, list[TeardownFailure]]:
        """
        Tear down every id in ordered_ids that has an instance.

        Returns (destroyed_count, failures).
        """
        failures: list[TeardownFailure] = []
        destroyed = 0

        for component_id in ordered_ids:
            if component_id not in instances:
                continue
            descriptor = self._descriptors[component_id]
            instance = instances[component_id]
            destroyed += 1

            for hook in descriptor.teardown_hooks:
                try:
                    logger.debug("Running teardown hook '%s' for '%s'", hook_name(hook), component_id)
                    invoke_hook(hook, instance)
                except Exception as e:
                    logger.warning(
                        "Teardown hook '%s' for '%s' failed: %s", hook_name(hook), component_id, e)
                    failures.append(TeardownFailure(component_id, hook, e))

        return destroyed, failures

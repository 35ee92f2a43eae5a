# ============================================================================
#  File: resource_locks.py
#  Purpose: All-or-nothing reservation of named resources across workflows
# ============================================================================
# SECTION 1: Imports
# ============================================================================
#
import threading
from contextlib import contextmanager
from typing import FrozenSet, Iterable, Iterator, List, Set

from loguru import logger

from plan_orchestrator.models import Workflow
#
# ============================================================================
# SECTION 2: ResourceLockManager
# ============================================================================
class ResourceLockManager:
    """
    Table of currently held resource names shared by every workflow.

    First requester wins and there is no queueing, so a long-running holder
    can starve other actions that need the same resource. Each workflow
    tracks the subset it acquired so it can release exactly those on teardown.
    """

    def __init__(self):
        self._held: Set[str] = set()
        self._lock = threading.Lock()

    #
    # =========================================================================
    # Method 2.1: reserve
    # =========================================================================
    #
    def reserve(self, resources: Iterable[str], workflow: Workflow) -> bool:
        """
        Atomically acquires every named resource, or none of them.

        Returns:
            bool: False if any resource is already held by anyone
        """
        wanted = frozenset(resources)
        with self._lock:
            busy = wanted & self._held
            if busy:
                logger.debug(f"Workflow {workflow.workflow_id}: resources busy {sorted(busy)}")
                return False
            self._held |= wanted
            workflow.resources_in_use |= wanted
        return True

    #
    # =========================================================================
    # Method 2.2: release
    # =========================================================================
    #
    def release(self, resources: Iterable[str], workflow: Workflow) -> None:
        """Frees the named resources this workflow still owns; others are left alone."""
        names = frozenset(resources)
        with self._lock:
            owned = names & workflow.resources_in_use
            self._held -= owned
            workflow.resources_in_use -= owned

    #
    # =========================================================================
    # Method 2.3: reserved
    # =========================================================================
    #
    @contextmanager
    def reserved(self, resources: Iterable[str], workflow: Workflow) -> Iterator[bool]:
        """
        Scoped reservation. Yields whether it succeeded; a successful
        reservation is released on every exit path, including cancellation.
        """
        wanted = frozenset(resources)
        if not self.reserve(wanted, workflow):
            yield False
            return
        try:
            yield True
        finally:
            self.release(wanted, workflow)

    #
    # =========================================================================
    # Method 2.4: release_all
    # =========================================================================
    #
    def release_all(self) -> List[str]:
        """Drops every held lock regardless of owner. Returns what was held."""
        with self._lock:
            released = sorted(self._held)
            self._held.clear()
        if released:
            logger.warning(f"Force-released {len(released)} resource locks: {released}")
        return released

    def is_held(self, resource: str) -> bool:
        with self._lock:
            return resource in self._held

    @property
    def held(self) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._held)
#
#
## End of Script

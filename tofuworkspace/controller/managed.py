"""
Reconcile passes for Workspaces.

The ManagedReconciler runs a single pass for one Workspace: connect, observe,
then create, update or delete as needed, recording the outcome as conditions.
The WorkspaceController schedules passes on a bounded thread pool and never
runs two passes for the same Workspace at once.
"""

import copy
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional

from ..apis.workspace import (
    Workspace,
    creating,
    deleting,
    reconcile_error,
    reconcile_success,
)
from ..core.deadline import Deadline
from ..errors import ProviderError
from ..security.sanitizer import SecurityError
from .workspace import Connector

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 600.0


@dataclass
class ReconcileResult:
    """Outcome of one reconcile pass."""
    requeue_after: float = DEFAULT_POLL_INTERVAL
    requeue: bool = False
    finalized: bool = False
    error: Optional[Exception] = None


class ManagedReconciler:
    """
    Drives reconcile passes through a Connector.

    ``timeout`` bounds a whole pass: the module fetch and every tofu command
    of one pass share a single deadline. Without it the Connector bounds the
    pass by its own timeout_seconds setting.
    """

    def __init__(
        self,
        connector: Connector,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        timeout: Optional[float] = None,
    ):
        self.connector = connector
        self.poll_interval = poll_interval
        self.timeout = timeout

    def reconcile(self, workspace: Workspace) -> ReconcileResult:
        """
        Run one reconcile pass.

        Outputs and connection details are only changed by a pass that
        succeeds; a failed pass records its error in the Synced condition.

        Args:
            workspace: The Workspace to reconcile; its status is updated in place

        Returns:
            ReconcileResult describing when to run the next pass
        """
        observed = copy.deepcopy(workspace.status.at_provider)
        try:
            return self._reconcile(workspace)
        except (ProviderError, SecurityError) as e:
            logger.error(f"Cannot reconcile Workspace {workspace.name}: {e}")
            workspace.status.at_provider = observed
            workspace.status.set_conditions(reconcile_error(e))
            return ReconcileResult(requeue=True, error=e)

    def _reconcile(self, workspace: Workspace) -> ReconcileResult:
        deadline = Deadline(self.timeout) if self.timeout is not None else None
        external = self.connector.connect(workspace, deadline=deadline)
        observation = external.observe(workspace)

        if workspace.was_deleted():
            if observation.resource_exists:
                workspace.status.set_conditions(deleting())
                external.delete(workspace)
                logger.info(f"Destroyed resources of Workspace {workspace.name}")
                workspace.status.set_conditions(reconcile_success())
                # Observe again to confirm nothing is left
                return ReconcileResult(requeue=True)
            workspace.status.set_conditions(deleting(), reconcile_success())
            logger.info(f"Workspace {workspace.name} has no remaining resources")
            return ReconcileResult(finalized=True)

        if not observation.resource_exists:
            creation = external.create(workspace)
            workspace.connection_details = creation.connection_details
            workspace.status.set_conditions(creating(), reconcile_success())
            logger.info(f"Created Workspace {workspace.name}")
            return ReconcileResult(requeue=True)

        if not observation.resource_up_to_date:
            update = external.update(workspace)
            workspace.connection_details = update.connection_details
            workspace.status.set_conditions(reconcile_success())
            logger.info(f"Updated Workspace {workspace.name}")
            return ReconcileResult(requeue_after=self.poll_interval)

        workspace.connection_details = observation.connection_details
        workspace.status.set_conditions(reconcile_success())
        logger.debug(f"Workspace {workspace.name} is up to date")
        return ReconcileResult(requeue_after=self.poll_interval)


class WorkspaceController:
    """
    Schedules reconcile passes on a bounded pool of worker threads.

    At most ``max_reconcile_rate`` passes run at once, and at most one per
    Workspace UID: submitting a Workspace whose pass is still pending or
    running returns the existing pass instead of starting another.
    """

    def __init__(self, reconciler: ManagedReconciler, max_reconcile_rate: int = 1):
        self.reconciler = reconciler
        self.max_reconcile_rate = max(1, max_reconcile_rate)
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_reconcile_rate,
            thread_name_prefix="reconcile",
        )
        self._lock = threading.Lock()
        self._in_flight: Dict[str, Future] = {}

    def submit(self, workspace: Workspace) -> Future:
        """Schedule a reconcile pass, coalescing with one already in flight."""
        with self._lock:
            future = self._in_flight.get(workspace.uid)
            if future is not None:
                logger.debug(f"Pass for Workspace {workspace.name} already in flight")
                return future
            future = self._executor.submit(self.reconciler.reconcile, workspace)
            self._in_flight[workspace.uid] = future
        future.add_done_callback(lambda f, uid=workspace.uid: self._done(uid, f))
        return future

    def _done(self, uid: str, future: Future):
        with self._lock:
            if self._in_flight.get(uid) is future:
                del self._in_flight[uid]

    def in_flight(self) -> int:
        with self._lock:
            return len(self._in_flight)

    def poll(
        self,
        list_workspaces: Callable[[], Iterable[Workspace]],
        stop_event: threading.Event,
        interval: float = DEFAULT_POLL_INTERVAL,
    ):
        """Submit every listed Workspace each interval until the stop event is set."""
        while True:
            for workspace in list_workspaces():
                self.submit(workspace)
            if stop_event.wait(interval):
                return

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait)

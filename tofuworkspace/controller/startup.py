"""
Provider startup.

setup() wires the long-running parts of the provider together: one garbage
collector per working-directory root and a WorkspaceController whose passes
are bounded by the configured reconcile timeout.
"""

import logging
import os
import threading
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional

from ..apis.workspace import Workspace
from ..clients.kube import KubeClient
from ..config import Settings
from ..errors import ProviderError
from .gc import start_collectors
from .managed import ManagedReconciler, WorkspaceController
from .workspace import Connector

logger = logging.getLogger(__name__)


@dataclass
class ProviderRuntime:
    """The running parts of a provider, as returned by setup()."""
    controller: WorkspaceController
    collectors: List[threading.Thread] = field(default_factory=list)
    poller: Optional[threading.Thread] = None

    def shutdown(self, wait: bool = True):
        """Stop accepting passes. The caller's stop event stops the threads."""
        self.controller.shutdown(wait=wait)


def setup(
    kube: KubeClient,
    settings: Settings,
    stop_event: threading.Event,
    namespaced: bool,
    connector: Optional[Connector] = None,
    list_workspaces: Optional[Callable[[], Iterable[Workspace]]] = None,
) -> ProviderRuntime:
    """
    Start the provider.

    Args:
        kube: Client for Workspace, ProviderConfig, ConfigMap and Secret reads
        settings: Provider settings
        stop_event: Set to stop the collectors and the poll loop
        namespaced: Whether Workspaces are namespaced or cluster-scoped
        connector: Connector to reconcile through; built from settings if omitted
        list_workspaces: When given, every listed Workspace is submitted each
            poll interval on a daemon thread

    Returns:
        ProviderRuntime holding the controller and the started threads

    Raises:
        ProviderError: If a working-directory root cannot be created
    """
    roots = [settings.tf_dir, settings.tmp_dir]
    for root in roots:
        try:
            os.makedirs(root, mode=0o700, exist_ok=True)
        except OSError as e:
            raise ProviderError(f"cannot create directory {root!r}") from e

    collectors = start_collectors(
        kube,
        roots,
        stop_event,
        namespaced,
        interval=float(settings.get("gc_interval_seconds")),
    )

    poll_interval = float(settings.get("poll_interval_seconds"))
    reconciler = ManagedReconciler(
        connector or Connector(kube, settings=settings),
        poll_interval=poll_interval,
        timeout=settings.get("timeout_seconds"),
    )
    controller = WorkspaceController(
        reconciler,
        max_reconcile_rate=int(settings.get("max_reconcile_rate")),
    )
    logger.info(
        f"Provider started: {controller.max_reconcile_rate} concurrent passes, "
        f"collecting {', '.join(roots)}"
    )

    runtime = ProviderRuntime(controller=controller, collectors=collectors)
    if list_workspaces is not None:
        runtime.poller = threading.Thread(
            target=controller.poll,
            args=(list_workspaces, stop_event, poll_interval),
            name="poll",
            daemon=True,
        )
        runtime.poller.start()
    return runtime

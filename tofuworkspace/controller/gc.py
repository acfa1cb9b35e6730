"""
Garbage collection of Workspace working directories.

Working directories are named after Workspace UIDs and are never removed by
the reconciler. The garbage collector periodically removes the ones whose
Workspace no longer exists.
"""

import logging
import os
import shutil
import threading
import uuid
from typing import Iterable, List, Optional

from ..clients.kube import KubeClient
from ..errors import GarbageCollectionError, ProviderError

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 3600.0

ERR_LIST_WORKSPACES = "cannot list workspaces"


def is_uuid(name: str) -> bool:
    try:
        uuid.UUID(name)
    except ValueError:
        return False
    return True


class GarbageCollector:
    """
    Removes the working directories of Workspaces that no longer exist.

    Only immediate subdirectories of ``parent_dir`` whose names parse as a
    UUID are considered; anything else is left alone.
    """

    def __init__(self, kube: KubeClient, parent_dir: str, interval: float = DEFAULT_INTERVAL):
        self.kube = kube
        self.parent_dir = parent_dir
        self.interval = interval

    def run(self, stop_event: threading.Event, namespaced: bool):
        """
        Collect every interval until the stop event is set.

        The first collection happens one interval after the call. Failures
        are logged and never stop the loop.
        """
        while not stop_event.wait(self.interval):
            try:
                self.collect(namespaced)
            except ProviderError as e:
                logger.info(f"Garbage collection of {self.parent_dir} failed: {e}")
            except Exception:
                logger.exception(f"Unexpected error collecting {self.parent_dir}")

    def start(self, stop_event: threading.Event, namespaced: bool) -> threading.Thread:
        """Run the collector on a daemon thread."""
        thread = threading.Thread(
            target=self.run,
            args=(stop_event, namespaced),
            name=f"gc-{os.path.basename(self.parent_dir.rstrip('/')) or 'root'}",
            daemon=True,
        )
        thread.start()
        return thread

    def collect(self, namespaced: bool) -> List[str]:
        """
        Run one collection pass.

        Args:
            namespaced: Whether to list namespaced or cluster-scoped Workspaces

        Returns:
            Paths of the removed directories

        Raises:
            GarbageCollectionError: If Workspaces cannot be listed, the parent
                directory cannot be read, or any directory cannot be removed
        """
        try:
            live = self.kube.list_workspace_uids(namespaced)
        except (LookupError, ProviderError) as e:
            raise GarbageCollectionError(ERR_LIST_WORKSPACES) from e
        return self.collect_orphans(live)

    def collect_orphans(self, live: Iterable[str], dry_run: bool = False) -> List[str]:
        """
        Remove UUID-named directories absent from a set of live UIDs.

        A directory that cannot be removed does not stop the others from
        being removed; all failures are reported together afterwards.

        Args:
            live: UIDs of existing Workspaces
            dry_run: Only report what would be removed

        Returns:
            Paths of the removed (or, with dry_run, removable) directories
        """
        exists = set(live)
        try:
            entries = sorted(os.scandir(self.parent_dir), key=lambda e: e.name)
        except OSError as e:
            raise GarbageCollectionError(f"cannot read directory {self.parent_dir!r}") from e

        removed: List[str] = []
        failed: List[str] = []
        for entry in entries:
            if not entry.is_dir(follow_symlinks=False) or not is_uuid(entry.name):
                continue
            if entry.name in exists:
                continue
            path = os.path.join(self.parent_dir, entry.name)
            if dry_run:
                removed.append(path)
                continue
            try:
                shutil.rmtree(path)
            except OSError as e:
                logger.debug(f"Cannot remove {path}: {e}")
                failed.append(path)
                continue
            logger.debug(f"Removed orphaned working directory {path}")
            removed.append(path)

        if failed:
            raise GarbageCollectionError(
                f"could not delete directories: {', '.join(failed)}", failed=failed
            )
        return removed


def start_collectors(
    kube: KubeClient,
    parent_dirs: Iterable[str],
    stop_event: threading.Event,
    namespaced: bool,
    interval: Optional[float] = None,
) -> List[threading.Thread]:
    """Start one collector per root directory, each on its own thread."""
    threads = []
    for parent_dir in parent_dirs:
        collector = GarbageCollector(kube, parent_dir, interval or DEFAULT_INTERVAL)
        threads.append(collector.start(stop_event, namespaced))
    return threads

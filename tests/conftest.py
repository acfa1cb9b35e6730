"""Shared fixtures and test doubles: an in-memory API server and a recording tofu client."""

from typing import Dict, List, Optional, Tuple

import pytest

from tofuworkspace.apis.providerconfig import ProviderConfig
from tofuworkspace.apis.workspace import Workspace, WorkspaceParameters
from tofuworkspace.clients.kube import NotFoundError
from tofuworkspace.config import Settings
from tofuworkspace.core.outputs import Output

UID = "49f3e4a2-2a1b-4c9e-9d3f-6f0b2c1d7e8a"


class FakeKube:
    """In-memory KubeClient."""

    def __init__(
        self,
        config_maps: Optional[Dict[Tuple[str, str], Dict[str, str]]] = None,
        secrets: Optional[Dict[Tuple[str, str], Dict[str, bytes]]] = None,
        provider_config: Optional[ProviderConfig] = None,
        uids: Optional[List[str]] = None,
    ):
        self.config_maps = config_maps or {}
        self.secrets = secrets or {}
        self.provider_config = provider_config or ProviderConfig()
        self.uids = list(uids or [])
        self.provider_config_error: Optional[Exception] = None
        self.list_error: Optional[Exception] = None
        self.resolved: List[str] = []

    def get_config_map(self, namespace, name):
        try:
            return dict(self.config_maps[(namespace, name)])
        except KeyError:
            raise NotFoundError("ConfigMap", namespace, name)

    def get_secret(self, namespace, name):
        try:
            return dict(self.secrets[(namespace, name)])
        except KeyError:
            raise NotFoundError("Secret", namespace, name)

    def resolve_provider_config(self, workspace):
        if self.provider_config_error is not None:
            raise self.provider_config_error
        self.resolved.append(workspace.uid)
        return self.provider_config

    def list_workspace_uids(self, namespaced, namespace=None):
        if self.list_error is not None:
            raise self.list_error
        return list(self.uids)


class FakeTofu:
    """
    TofuClient that records every call.

    Set ``errors[<method>]`` to make a method raise.
    """

    def __init__(
        self,
        checksum: str = "",
        differs: bool = False,
        resources: Optional[List[str]] = None,
        outputs: Optional[List[Output]] = None,
    ):
        self.checksum = checksum
        self.differs = differs
        self.resource_list = list(resources or [])
        self.output_list = list(outputs or [])
        self.errors: Dict[str, Exception] = {}
        self.calls: List[Tuple[str, tuple]] = []

    def _record(self, name, *args):
        self.calls.append((name, args))
        if name in self.errors:
            raise self.errors[name]

    def called(self, name) -> List[tuple]:
        return [args for call, args in self.calls if call == name]

    def call_names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def init(self, *options):
        self._record("init", *options)

    def workspace(self, name):
        self._record("workspace", name)

    def outputs(self):
        self._record("outputs")
        return list(self.output_list)

    def resources(self):
        self._record("resources")
        return list(self.resource_list)

    def diff(self, *options):
        self._record("diff", *options)
        return self.differs

    def apply(self, *options):
        self._record("apply", *options)

    def destroy(self, *options):
        self._record("destroy", *options)

    def delete_current_workspace(self):
        self._record("delete_current_workspace")

    def generate_checksum(self):
        self._record("generate_checksum")
        return self.checksum


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def settings(tmp_path):
    """Settings rooted in a temporary directory, with no user config file."""
    s = Settings(config_file=str(tmp_path / "settings.json"), environ={})
    s.set("tf_dir", str(tmp_path / "tofu"))
    s.set("tmp_root", str(tmp_path / "tmp"))
    return s


@pytest.fixture
def kube():
    return FakeKube()


@pytest.fixture
def tofu():
    return FakeTofu()


@pytest.fixture
def workspace():
    return Workspace(
        uid=UID,
        name="cool-workspace",
        spec=WorkspaceParameters(module="I'm HCL!"),
    )

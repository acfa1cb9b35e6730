"""
Fetching of remote root modules.

Supported module addresses:

- ``git::<url>`` and URLs ending in ``.git``, optionally with a ``//subdir``
  and ``?ref=<branch, tag or commit>`` / ``?depth=<n>`` query
- ``github.com/<owner>/<repo>`` shorthand
- ``file::<path>`` and absolute local directory paths

The fetched tree is copied into the destination directory, so fetching the
same address twice leaves the same files behind. The files each fetch wrote
are listed in a manifest in the destination; files a previous fetch wrote
that the new tree no longer has are removed, so a module converges to its
source even when files are deleted upstream.
"""

import logging
import os
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple
from urllib.parse import parse_qs, urlencode, urlsplit, urlunsplit

from ..errors import ModuleFetchError
from ..security.sanitizer import InputSanitizer, SecurityError
from .deadline import Deadline

logger = logging.getLogger(__name__)

GIT_CREDENTIALS_FILENAME = ".git-credentials"

MANIFEST_FILENAME = ".module-manifest"

# tofu's own state under the working directory; never pruned
PRESERVED_DIRS = (".terraform", "terraform.tfstate.d")


def list_module_files(root: str) -> List[str]:
    """Relative paths of every file a fetch copies from ``root``, sorted."""
    files = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d != ".git")
        for name in filenames:
            if name == ".git":
                continue
            rel = os.path.relpath(os.path.join(dirpath, name), root)
            files.append(rel.replace(os.sep, "/"))
    return sorted(files)


@dataclass
class ModuleAddress:
    """A parsed module address."""
    kind: str          # "git" or "file"
    location: str      # clone URL or local path
    subdir: str = ""
    ref: str = ""
    depth: int = 0


def _split_subdir(src: str) -> Tuple[str, str]:
    """Split ``<source>//<subdir>`` ignoring the ``://`` of a URL scheme."""
    offset = 0
    scheme_end = src.find("://")
    if scheme_end != -1:
        offset = scheme_end + 3

    index = src.find("//", offset)
    if index == -1:
        return src, ""

    source, rest = src[:index], src[index + 2:]
    # Keep the query with the source, not the subdirectory
    subdir, _, query = rest.partition("?")
    if query:
        source = f"{source}?{query}"
    return source, subdir.strip("/")


def parse_module_address(src: str) -> ModuleAddress:
    """
    Parse a module address.

    Raises:
        ModuleFetchError: If the address uses an unsupported scheme
    """
    if not src:
        raise ModuleFetchError("module address is empty")

    forced = ""
    if "::" in src.split("/", 1)[0]:
        forced, src = src.split("::", 1)

    source, subdir = _split_subdir(src)

    if forced == "file" or (not forced and os.path.isabs(source)):
        return ModuleAddress(kind="file", location=source, subdir=subdir)

    if not forced and source.startswith("github.com/"):
        forced = "git"
        path, sep, query = source.partition("?")
        if not path.endswith(".git"):
            path += ".git"
        source = f"https://{path}{sep}{query}"

    parts = urlsplit(source)
    if forced != "git" and not parts.path.endswith(".git"):
        raise ModuleFetchError(f"unsupported module source: {src}")

    query = parse_qs(parts.query)
    ref = query.pop("ref", [""])[0]
    depth_values = query.pop("depth", ["0"])
    try:
        depth = int(depth_values[0])
    except ValueError:
        raise ModuleFetchError(f"invalid depth in module source: {src}")

    location = urlunsplit(parts._replace(query=urlencode(query, doseq=True)))
    return ModuleAddress(kind="git", location=location, subdir=subdir, ref=ref, depth=depth)


class ModuleGetter:
    """
    Fetches module trees into working directories.

    Git credentials are handed to each fetch explicitly rather than through
    the process environment, so concurrent fetches for different Workspaces
    never see each other's credentials.
    """

    def __init__(self, git_binary: str = "git", timeout: Optional[float] = 600):
        self.git_binary = git_binary
        self.timeout = timeout

    def get(
        self,
        src: str,
        dst: str,
        git_cred_dir: Optional[str] = None,
        deadline: Optional[Deadline] = None,
    ) -> None:
        """
        Fetch a module into a directory.

        Args:
            src: Module address
            dst: Destination directory (created if missing)
            git_cred_dir: Directory holding a .git-credentials file, if any
            deadline: Deadline of the reconcile pass; bounds every git command

        Raises:
            ModuleFetchError: If the module cannot be fetched
        """
        address = parse_module_address(src)
        os.makedirs(dst, mode=0o700, exist_ok=True)
        logger.debug(f"Fetching {address.kind} module {address.location} into {dst}")

        if address.kind == "file":
            self._copy_tree(self._subdir(address.location, address.subdir), dst)
            return

        with tempfile.TemporaryDirectory(prefix="tofu-module-") as scratch:
            checkout = os.path.join(scratch, "checkout")
            self._clone(address, checkout, git_cred_dir, deadline)
            self._copy_tree(self._subdir(checkout, address.subdir), dst)

    @staticmethod
    def _subdir(root: str, subdir: str) -> str:
        if not subdir:
            return root
        try:
            return InputSanitizer.sanitize_entrypoint(root, subdir)
        except SecurityError as e:
            raise ModuleFetchError(f"invalid module subdirectory {subdir!r}") from e

    @classmethod
    def _copy_tree(cls, source: str, dst: str) -> None:
        if not os.path.isdir(source):
            raise ModuleFetchError(f"module source is not a directory: {source}")
        previous = cls._read_manifest(dst)
        shutil.copytree(
            source,
            dst,
            dirs_exist_ok=True,
            ignore=shutil.ignore_patterns(".git"),
        )
        current = list_module_files(source)
        cls._prune(dst, set(previous) - set(current))
        cls._write_manifest(dst, current)

    @staticmethod
    def _read_manifest(dst: str) -> List[str]:
        try:
            with open(os.path.join(dst, MANIFEST_FILENAME), "r") as f:
                return [line.strip() for line in f if line.strip()]
        except FileNotFoundError:
            return []

    @staticmethod
    def _write_manifest(dst: str, files: List[str]) -> None:
        with open(os.path.join(dst, MANIFEST_FILENAME), "w") as f:
            f.writelines(f"{name}\n" for name in files if name != MANIFEST_FILENAME)

    @staticmethod
    def _prune(dst: str, stale: Set[str]) -> None:
        """Remove files a previous fetch wrote that the module no longer has."""
        base = os.path.normpath(dst)
        for rel in sorted(stale):
            path = os.path.normpath(os.path.join(base, rel))
            if not path.startswith(base + os.sep):
                continue
            top = os.path.relpath(path, base).split(os.sep)[0]
            if top in PRESERVED_DIRS or top == MANIFEST_FILENAME:
                continue
            if not os.path.isfile(path) and not os.path.islink(path):
                continue
            os.remove(path)
            logger.debug(f"Removed {rel}, no longer part of the module")

            # Drop directories the removal left empty
            parent = os.path.dirname(path)
            while parent != base:
                try:
                    os.rmdir(parent)
                except OSError:
                    break
                parent = os.path.dirname(parent)

    def _git_environment(self, git_cred_dir: Optional[str]) -> Dict[str, str]:
        env = dict(os.environ)
        env["GIT_TERMINAL_PROMPT"] = "0"
        if git_cred_dir:
            env["GIT_CRED_DIR"] = git_cred_dir
        return env

    def _git_config_args(self, git_cred_dir: Optional[str]) -> List[str]:
        if not git_cred_dir:
            return []
        path = os.path.join(git_cred_dir, GIT_CREDENTIALS_FILENAME)
        if not os.path.isfile(path):
            return []
        return ["-c", f"credential.helper=store --file={path}"]

    def _clone(
        self,
        address: ModuleAddress,
        checkout: str,
        git_cred_dir: Optional[str],
        deadline: Optional[Deadline],
    ) -> None:
        config = self._git_config_args(git_cred_dir)
        clone = [self.git_binary, *config, "clone", "--quiet"]
        if address.depth > 0:
            clone.extend(["--depth", str(address.depth)])
            if address.ref:
                clone.extend(["--branch", address.ref])
        clone.extend(["--", address.location, checkout])
        self._run_git(clone, "clone", git_cred_dir, deadline)

        if address.ref and address.depth <= 0:
            self._run_git(
                [self.git_binary, *config, "-C", checkout, "checkout", "--quiet", address.ref],
                "checkout",
                git_cred_dir,
                deadline,
            )

    def _run_git(
        self,
        cmd: List[str],
        verb: str,
        git_cred_dir: Optional[str],
        deadline: Optional[Deadline] = None,
    ) -> None:
        for arg in cmd:
            if not InputSanitizer.is_safe_command_arg(arg):
                raise ModuleFetchError("unsafe argument in git command")

        timeout = self.timeout
        if deadline is not None:
            if deadline.expired():
                raise ModuleFetchError(f"git {verb} not started: reconcile timeout exceeded")
            timeout = deadline.bound(timeout)

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout,
                shell=False,
                env=self._git_environment(git_cred_dir),
            )
        except subprocess.TimeoutExpired as e:
            raise ModuleFetchError(f"git timed out after {timeout:.0f} seconds") from e
        except OSError as e:
            raise ModuleFetchError(f"cannot run {self.git_binary}") from e

        if result.returncode != 0:
            raise ModuleFetchError(f"git {verb} failed: {result.stderr.strip()}")

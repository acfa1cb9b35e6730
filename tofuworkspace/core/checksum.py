"""
Content fingerprint of a working directory.

The fingerprint follows the "h1:" directory hash used by Go modules: every
regular file under the directory is hashed with SHA-256, the sorted list of
"<hex digest>  <relative path>" lines is hashed again, and the result is
base64 encoded. Anything that changes a file's bytes or name changes the
fingerprint, including a missing ``.terraform`` directory after a restart.
"""

import base64
import hashlib
import os
from typing import List

HASH_PREFIX = "h1:"

_CHUNK_SIZE = 1 << 16


def _list_files(directory: str) -> List[str]:
    files = []
    for root, dirs, names in os.walk(directory):
        dirs.sort()
        for name in names:
            path = os.path.join(root, name)
            if not os.path.isfile(path):
                continue
            rel = os.path.relpath(path, directory)
            files.append(rel.replace(os.sep, "/"))
    return sorted(files)


def _file_digest(path: str) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def hash_dir(directory: str) -> str:
    """
    Compute the fingerprint of a directory tree.

    Args:
        directory: Directory to hash

    Returns:
        Fingerprint of the form ``h1:<base64>``

    Raises:
        OSError: If the directory or one of its files cannot be read
        ValueError: If a file name contains a newline
    """
    if not os.path.isdir(directory):
        raise NotADirectoryError(f"not a directory: {directory}")

    summary = hashlib.sha256()
    for rel in _list_files(directory):
        if "\n" in rel:
            raise ValueError(f"file names with newlines are not supported: {rel!r}")
        digest = _file_digest(os.path.join(directory, rel))
        summary.update(f"{digest}  {rel}\n".encode())

    return HASH_PREFIX + base64.b64encode(summary.digest()).decode()

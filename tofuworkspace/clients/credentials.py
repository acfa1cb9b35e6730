"""
Extraction of credential bytes from their declared source.
"""

import logging
import os

from ..apis.providerconfig import CredentialsSource, ProviderCredentials
from ..errors import CredentialsError
from .kube import KubeClient, NotFoundError

logger = logging.getLogger(__name__)


def extract_credentials(creds: ProviderCredentials, kube: KubeClient) -> bytes:
    """
    Extract the bytes of one credential.

    Args:
        creds: Credential descriptor from the ProviderConfig
        kube: Client used for Secret lookups

    Returns:
        Raw credential bytes (empty for source None)

    Raises:
        CredentialsError: If the source is misconfigured or the value is absent
    """
    source = CredentialsSource(creds.source)

    if source == CredentialsSource.NONE:
        return b""

    if source == CredentialsSource.SECRET:
        ref = creds.secret_ref
        if ref is None:
            raise CredentialsError("cannot extract from secret key when none specified")
        try:
            data = kube.get_secret(ref.namespace, ref.name)
        except NotFoundError as e:
            raise CredentialsError("cannot get credentials secret") from e
        if ref.key not in data:
            raise CredentialsError(
                f"couldn't find key {ref.key} in Secret {ref.namespace}/{ref.name}"
            )
        return data[ref.key]

    if source == CredentialsSource.ENVIRONMENT:
        if creds.env is None:
            raise CredentialsError("cannot extract from environment variable when none specified")
        # A missing variable yields empty credentials, as an unset variable would
        return os.environ.get(creds.env.name, "").encode()

    if source == CredentialsSource.FILESYSTEM:
        if creds.fs is None:
            raise CredentialsError("cannot extract from filesystem when no path specified")
        try:
            with open(creds.fs.path, "rb") as f:
                return f.read()
        except OSError as e:
            raise CredentialsError(f"cannot read credentials file {creds.fs.path}") from e

    raise CredentialsError(f"credentials source {source.value} is not currently supported")

"""Factory for building the tree reader from configuration.

Exposes get_tree_reader which wires a BitbucketServerClient and a
BitbucketServerUrlReader for the configured host.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from clients.bitbucket import BitbucketServerClient
from core.errors import ValidationError
from core.interfaces import TreeReader
from core.models import BitbucketServerConfig
from sources.url_reader import BitbucketServerUrlReader


def get_tree_reader(
    *,
    host: str,
    api_base_url: Optional[str] = None,
    token: Optional[str] = None,
    username: Optional[str] = None,
    password: Optional[str] = None,
    timeout: float = 20.0,
    http_verify: bool = True,
    max_concurrency: int = 5,
    rate_per_sec: float = 0.0,
    workspace_root: Optional[Path] = None,
    client: Optional[BitbucketServerClient] = None,
) -> TreeReader:
    """
    Factory that returns a reader for one Bitbucket Server host.

    An injected client wins over the connection settings.
    """
    if client is None:
        if not host or not host.strip():
            raise ValidationError("Missing Bitbucket Server host")

        config = BitbucketServerConfig.from_host(
            host,
            api_base_url=api_base_url,
            token=token,
            username=username,
            password=password,
        )
        client = BitbucketServerClient(
            config=config,
            timeout=timeout,
            verify=http_verify,
            max_concurrency=max_concurrency,
            rate_per_sec=rate_per_sec,
        )

    return BitbucketServerUrlReader(client=client, workspace_root=workspace_root)

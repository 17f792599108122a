"""Server bootstrap for the Bitbucket tree MCP service.

Creates the FastMCP instance. main() builds the tree reader from the
environment, registers the tools and starts the MCP server (stdio
transport), so importing this module needs no configuration. Logs go to
stderr because stdout carries the protocol.
"""

import logging
import sys

from mcp.server.fastmcp import FastMCP

from config import (
    BITBUCKET_API_BASE_URL,
    BITBUCKET_HOST,
    BITBUCKET_MAX_CONCURRENCY,
    BITBUCKET_PASSWORD,
    BITBUCKET_RATE_PER_SEC,
    BITBUCKET_TIMEOUT,
    BITBUCKET_TOKEN,
    BITBUCKET_USERNAME,
    HTTP_VERIFY,
    LOG_LEVEL,
    TREE_WORKSPACE_DIR,
)
from core.errors import ValidationError
from sources.reader_factory import get_tree_reader

from tools.read_tree import register as register_read_tree
from tools.read_url import register as register_read_url
from tools.search import register as register_search

logger = logging.getLogger(__name__)

mcp = FastMCP("bitbucket-tree-mcp")


def register_tools() -> None:
    reader = get_tree_reader(
        host=BITBUCKET_HOST,
        api_base_url=BITBUCKET_API_BASE_URL,
        token=BITBUCKET_TOKEN,
        username=BITBUCKET_USERNAME,
        password=BITBUCKET_PASSWORD,
        timeout=BITBUCKET_TIMEOUT,
        http_verify=HTTP_VERIFY,
        max_concurrency=BITBUCKET_MAX_CONCURRENCY,
        rate_per_sec=BITBUCKET_RATE_PER_SEC,
        workspace_root=TREE_WORKSPACE_DIR,
    )

    register_read_tree(mcp, reader=reader)
    register_search(mcp, reader=reader)
    register_read_url(mcp, reader=reader)


def main() -> None:
    logging.basicConfig(
        level=LOG_LEVEL,
        stream=sys.stderr,
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
    )
    try:
        register_tools()
    except ValidationError as e:
        logger.error("Cannot start: %s. Set BITBUCKET_HOST to the Bitbucket Server host.", e)
        raise SystemExit(2) from e

    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()

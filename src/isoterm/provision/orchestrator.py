"""
Environment Setup Orchestrator

Provisions every declared tool concurrently inside one environment directory
and treats the run as a transaction: either every tool succeeds and the
configuration files are generated, or the whole directory is removed.

Concurrency policy: one asyncio task per tool, joined with
`asyncio.gather(..., return_exceptions=True)`. When a task fails its siblings
are allowed to finish; their results are discarded and the rollback runs only
once every task has settled, so nothing writes into a deleted tree.
"""

import asyncio
import os
import shutil
import time
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from isoterm.config_utils import Settings
from isoterm.log_utils import logger
from isoterm.overlay import forward_user_config
from isoterm.shell_config import generate_configs
from isoterm.tools import TOOLS, ToolSpec

from ..download.async_client import AsyncGitHubClient
from ..download.async_downloader import AsyncDownloader
from ..download.resolver import PlatformInfo, detect_platform
from .context import (
    EnvironmentLayout,
    ProvisionContext,
    ProvisionOutcome,
    ReporterFactory,
    null_reporter_factory,
)
from .provisioner import provision_tool


def create_skeleton(env_dir: Path) -> EnvironmentLayout:
    """Create `<env>/{bin,config,data}` and return the layout."""
    layout = EnvironmentLayout(Path(env_dir))
    for directory in (layout.bin_dir, layout.config_dir, layout.data_dir):
        directory.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Created {directory}")
    return layout


def rollback(env_dir: Path) -> bool:
    """
    Delete the environment directory.

    Returns:
        bool: True when the directory no longer exists.
    """
    if not os.path.lexists(env_dir):
        return True
    logger.warning(f"Removing partially created environment at {env_dir}")
    try:
        if os.path.islink(env_dir):
            os.unlink(env_dir)
        else:
            shutil.rmtree(env_dir)
    except OSError as e:
        logger.error(f"Failed to remove {env_dir}: {e}")
        return False
    return True


async def provision_all(
    tools: Sequence[ToolSpec], ctx: ProvisionContext
) -> List[ProvisionOutcome]:
    """
    Provision `tools` concurrently and return one outcome per tool, in order.

    Failures are reported as FAILED outcomes instead of being raised.
    Cancellation and interpreter-level exceptions still propagate.
    """
    results = await asyncio.gather(
        *(provision_tool(tool, ctx) for tool in tools), return_exceptions=True
    )
    outcomes: List[ProvisionOutcome] = []
    for tool, result in zip(tools, results):
        if isinstance(result, ProvisionOutcome):
            outcomes.append(result)
        elif isinstance(result, Exception):
            logger.error(f"Failed to provision {tool.name}: {result}")
            outcomes.append(ProvisionOutcome.failed(tool, result))
        else:
            raise result
    return outcomes


def _log_summary(outcomes: List[ProvisionOutcome], start_time: float) -> None:
    elapsed = time.time() - start_time
    for outcome in outcomes:
        logger.info(f"{outcome.tool.name}: {outcome.status.value} ({outcome.detail})")
    logger.info(f"Provisioned {len(outcomes)} tools in {elapsed:.1f}s")


async def setup_environment(
    env_dir: Path,
    settings: Optional[Settings] = None,
    tools: Sequence[ToolSpec] = TOOLS,
    platform_info: Optional[PlatformInfo] = None,
    client: Optional[AsyncGitHubClient] = None,
    reporter_factory: ReporterFactory = null_reporter_factory,
    search_path: Optional[str] = None,
    user_config_home: Optional[Path] = None,
    on_complete: Optional[Callable[[Path], object]] = None,
) -> List[ProvisionOutcome]:
    """
    Build the whole environment at `env_dir` or leave nothing behind.

    Parameters:
        env_dir (Path): Environment root to create.
        settings (Optional[Settings]): Network settings; defaults are used when None.
        tools (Sequence[ToolSpec]): Tools to provision.
        platform_info (Optional[PlatformInfo]): Host description; probed when None.
        client (Optional[AsyncGitHubClient]): Client to use; one is created and closed when None.
        reporter_factory (ReporterFactory): Creates a progress reporter per tool.
        search_path (Optional[str]): PATH used to find system binaries.
        user_config_home (Optional[Path]): Source of the config overlay.
        on_complete (Optional[Callable[[Path], object]]): Configuration step run
            once every tool succeeded; defaults to `generate_configs`.

    Returns:
        List[ProvisionOutcome]: One successful outcome per tool.

    Raises:
        IsotermError: The first tool failure, in declaration order, or a
            configuration failure. The environment has been removed either way.
    """
    start_time = time.time()
    settings = settings or Settings()
    root = Path(env_dir).expanduser().absolute()
    logger.info(f"Setting up environment in {root}")

    owns_client = client is None
    if client is None:
        client = AsyncGitHubClient.from_settings(settings)
    try:
        layout = create_skeleton(root)
        try:
            if platform_info is None:
                platform_info = await detect_platform()
            logger.debug(f"Platform: {platform_info}")
            ctx = ProvisionContext(
                layout=layout,
                client=client,
                downloader=AsyncDownloader(client),
                platform=platform_info,
                search_path=search_path,
                reporter_factory=reporter_factory,
            )
            outcomes = await provision_all(tools, ctx)
        finally:
            if owns_client:
                await client.close()

        _log_summary(outcomes, start_time)
        failures = [o for o in outcomes if not o.succeeded]
        if failures:
            # first failure in declaration order is the one surfaced
            assert failures[0].error is not None
            raise failures[0].error

        (on_complete or generate_configs)(layout.root)
        forward_user_config(layout.root, user_config_home)
    except BaseException:
        rollback(root)
        raise

    logger.info("Environment setup complete")
    return outcomes

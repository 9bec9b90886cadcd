"""
Per-variant provisioning strategies.

Every ToolVariant maps to one strategy object. The provisioner calls
`install_from_release` for the REMOTE_INSTALL path and `post_symlink` after a
system binary has been linked; strategies add their tool-specific steps on top
of the shared installation helpers below.
"""

import asyncio
import os
import re
import shutil
import stat
from pathlib import Path
from typing import Any, Callable, Dict, List

from isoterm.constants import (
    EXECUTABLE_PERMISSIONS,
    FISH_SHARE_DIR_NAME,
    HELIX_RUNTIME_DIR_NAME,
    HELIX_USER_RUNTIME_DIR,
    HELIX_VERSION_PATTERN,
    VERSION_FLAG,
)
from isoterm.exceptions import ArchiveError, ProcessError
from isoterm.log_utils import logger
from isoterm.tools import ToolSpec, ToolVariant
from isoterm.utils import run_command_async

from ..download.files import (
    ArchiveKind,
    extract_full_tree,
    extract_single_file,
    extract_sub_tree,
)
from ..download.interfaces import ProgressReporter, Release, ReleaseAsset
from ..download.resolver import resolve_release_asset
from .context import ProvisionContext
from .symlinks import create_symlink


async def _run_blocking(func: Callable[..., Any], *args: Any) -> Any:
    """Run blocking filesystem work on the default executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, func, *args)


def _ensure_executable(path: Path) -> None:
    if os.name == "nt":
        return
    mode = path.stat().st_mode
    if not mode & stat.S_IXUSR:
        os.chmod(path, EXECUTABLE_PERMISSIONS)


def find_binary_in_tree(tool: ToolSpec, tree: Path, executable: str) -> Path:
    """
    Locate the executable of a full-archive install.

    The declared in-archive path wins; otherwise the first regular file named
    like the executable, in sorted order, is used.

    Raises:
        ArchiveError: If the extracted tree contains no such file.
    """
    if tool.path_in_archive:
        declared = tree / tool.path_in_archive
        if declared.is_file():
            return declared
        logger.debug(
            f"{tool.name}: declared binary path {tool.path_in_archive} not in archive, searching"
        )
    for candidate in sorted(tree.rglob(executable)):
        if candidate.is_file():
            return candidate
    raise ArchiveError(
        f"Could not find '{executable}' inside the downloaded archive",
        f"extracted to {tree}",
    )


def parse_tool_version(output: str, pattern: str = HELIX_VERSION_PATTERN) -> str:
    """
    Pull the version number out of a `--version` banner.

    Raises:
        ProcessError: If the output does not contain a version.
    """
    match = re.search(pattern, output)
    if not match:
        raise ProcessError(
            "Could not parse version from command output",
            details=output.strip()[:200] or "<empty output>",
        )
    return match.group(1)


class SimpleStrategy:
    """Install from a release asset; nothing extra after a system link."""

    async def download_and_extract(
        self,
        tool: ToolSpec,
        ctx: ProvisionContext,
        asset: ReleaseAsset,
        reporter: ProgressReporter,
    ) -> Path:
        """
        Download `asset` and install it into the environment.

        Returns:
            Path: The `bin/` entry for the tool.
        """
        kind = ArchiveKind.from_name(asset.name)
        executable = tool.executable_name(ctx.platform.os_name)
        bin_entry = ctx.layout.bin_dir / executable

        with await ctx.downloader.download_to_temp(
            asset.download_url, asset.name, reporter
        ) as handle:
            reporter.set_message(f"Extracting {asset.name}")
            if not tool.is_full_archive:
                extracted = await _run_blocking(
                    extract_single_file, handle.path, kind, ctx.layout.bin_dir, executable
                )
                os.chmod(extracted, EXECUTABLE_PERMISSIONS)
                return extracted

            tool_dir = ctx.layout.tool_dir(tool)
            if tool_dir.exists():
                await _run_blocking(shutil.rmtree, tool_dir)
            await _run_blocking(extract_full_tree, handle.path, kind, tool_dir)

        binary = find_binary_in_tree(tool, tool_dir, executable)
        _ensure_executable(binary)
        return create_symlink(binary, bin_entry)

    async def install_from_release(
        self,
        tool: ToolSpec,
        ctx: ProvisionContext,
        reporter: ProgressReporter,
    ) -> str:
        """
        Resolve, download and install the latest release of `tool`.

        Returns:
            str: Name of the installed asset.
        """
        reporter.set_message(f"Resolving {tool.name} release")
        release, asset = await resolve_release_asset(ctx.client, tool, ctx.platform)
        await self.download_and_extract(tool, ctx, asset, reporter)
        await self.after_install(tool, ctx, release, reporter)
        return asset.name

    async def after_install(
        self,
        tool: ToolSpec,
        ctx: ProvisionContext,
        release: Release,
        reporter: ProgressReporter,
    ) -> None:
        return None

    async def post_symlink(
        self,
        tool: ToolSpec,
        system_binary: Path,
        ctx: ProvisionContext,
        reporter: ProgressReporter,
    ) -> None:
        return None


class AuxDataStrategy(SimpleStrategy):
    """
    Tools whose platform archive may lack their data directory.

    When `<install_dir>/share` is missing after the install, the release's
    source tarball is fetched and only its `share` tree is extracted.
    """

    data_dir_name = FISH_SHARE_DIR_NAME

    async def after_install(
        self,
        tool: ToolSpec,
        ctx: ProvisionContext,
        release: Release,
        reporter: ProgressReporter,
    ) -> None:
        data_dir = ctx.layout.tool_dir(tool) / self.data_dir_name
        if data_dir.is_dir():
            logger.debug(f"{tool.name}: {data_dir} shipped with the release archive")
            return
        if not release.tarball_url:
            raise ArchiveError(
                f"{tool.name} release {release.tag_name or '<unknown>'} has no source tarball",
                f"needed to provide {self.data_dir_name}/",
            )

        logger.info(f"Fetching {tool.name} data files from the source tarball")
        source_name = f"{tool.name}-{release.tag_name or 'source'}.tar.gz"
        with await ctx.downloader.download_to_temp(
            release.tarball_url, source_name, reporter
        ) as handle:
            reporter.set_message(f"Extracting {tool.name} {self.data_dir_name}")
            written: List[Path] = await _run_blocking(
                extract_sub_tree,
                handle.path,
                ArchiveKind.TAR_GZ,
                data_dir,
                self.data_dir_name,
            )
        if not written:
            raise ArchiveError(
                f"Source tarball of {tool.name} has no '{self.data_dir_name}' directory"
            )


class VersionLockedRuntimeStrategy(SimpleStrategy):
    """
    Tools whose runtime files must match the binary version.

    A release install already carries its runtime next to the binary. When a
    system binary is linked instead and the user has no global runtime, the
    runtime of the exact same version is fetched into `<env>/<tool>/runtime`.
    """

    runtime_dir_name = HELIX_RUNTIME_DIR_NAME
    user_runtime_dir = HELIX_USER_RUNTIME_DIR

    async def post_symlink(
        self,
        tool: ToolSpec,
        system_binary: Path,
        ctx: ProvisionContext,
        reporter: ProgressReporter,
    ) -> None:
        user_runtime = Path(os.path.expanduser(self.user_runtime_dir))
        if user_runtime.is_dir():
            logger.debug(f"{tool.name}: using existing runtime at {user_runtime}")
            return
        target = ctx.layout.tool_dir(tool) / self.runtime_dir_name
        if target.is_dir():
            return

        reporter.set_message(f"Checking {tool.name} version")
        output = await run_command_async([str(system_binary), VERSION_FLAG])
        version = parse_tool_version(output)
        logger.info(f"System {tool.name} is version {version}; fetching matching runtime")

        _release, asset = await resolve_release_asset(
            ctx.client, tool, ctx.platform, tag=version
        )
        kind = ArchiveKind.from_name(asset.name)
        with await ctx.downloader.download_to_temp(
            asset.download_url, asset.name, reporter
        ) as handle:
            reporter.set_message(f"Extracting {tool.name} {self.runtime_dir_name}")
            written: List[Path] = await _run_blocking(
                extract_sub_tree, handle.path, kind, target, self.runtime_dir_name
            )
        if not written:
            raise ArchiveError(
                f"Release {version} of {tool.name} has no '{self.runtime_dir_name}' directory"
            )


STRATEGIES: Dict[ToolVariant, SimpleStrategy] = {
    ToolVariant.SIMPLE: SimpleStrategy(),
    ToolVariant.REQUIRES_AUX_DATA: AuxDataStrategy(),
    ToolVariant.VERSION_LOCKED_RUNTIME: VersionLockedRuntimeStrategy(),
}


def strategy_for(tool: ToolSpec) -> SimpleStrategy:
    return STRATEGIES[tool.variant]

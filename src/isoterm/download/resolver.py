"""
Release asset resolution

Picks the release asset that fits the host from its file name alone: asset
names are expected to carry the tool name, the CPU architecture, a platform
token and the archive extension. This is a naming-convention heuristic, not a
manifest lookup, so the matching is deliberately ordered and deterministic.

Platform facts (OS, architecture, glibc version) are probed once per run by
`detect_platform` and passed in explicitly; the matching functions never look
at the running host.
"""

import os
import platform
import re
import sys
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from packaging.version import InvalidVersion, Version

from isoterm.constants import (
    ARCH_ALIASES,
    DEFAULT_ARCHIVE_EXTENSION,
    LIBC_PROBE_COMMAND,
    LIBC_VERSION_PATTERN,
    LINUX_GENERIC_TARGET,
    LINUX_GNU_TARGET,
    LINUX_MUSL_TARGET,
    MACOS_TARGET,
    OS_ANDROID,
    OS_LINUX,
    OS_MACOS,
    OS_WINDOWS,
    WINDOWS_ARCHIVE_EXTENSION,
    WINDOWS_TARGET,
)
from isoterm.exceptions import AssetNotFoundError, ProcessError
from isoterm.log_utils import logger
from isoterm.tools import ToolSpec
from isoterm.utils import run_command_async

from .async_client import AsyncGitHubClient
from .interfaces import Release, ReleaseAsset


@dataclass(frozen=True)
class PlatformInfo:
    """
    Host facts used for asset selection.

    Attributes:
        os_name: One of linux, android, macos, windows (or the raw name when unknown).
        arch: Normalized CPU architecture, e.g. x86_64 or aarch64.
        glibc_version: "major.minor" of the host glibc, None when not detected.
    """

    os_name: str
    arch: str
    glibc_version: Optional[str] = None


def normalize_os(sys_platform: str, is_android: bool = False) -> str:
    if is_android:
        return OS_ANDROID
    if sys_platform.startswith("linux"):
        return OS_LINUX
    if sys_platform == "darwin":
        return OS_MACOS
    if sys_platform in ("win32", "cygwin"):
        return OS_WINDOWS
    return sys_platform


def normalize_arch(machine: str) -> str:
    lowered = machine.lower()
    return ARCH_ALIASES.get(lowered, lowered)


def _running_on_android() -> bool:
    return hasattr(sys, "getandroidapilevel") or "TERMUX_VERSION" in os.environ


def parse_glibc_version(output: str) -> Optional[str]:
    """
    Extract "major.minor" from `ldd --version` output.

    The last version-looking token on the first line wins, e.g.
    "ldd (Ubuntu GLIBC 2.35-0ubuntu3.8) 2.35" gives "2.35".
    """
    lines = output.strip().splitlines()
    if not lines:
        return None
    matches = re.findall(LIBC_VERSION_PATTERN, lines[0])
    if not matches:
        return None
    major, minor = matches[-1]
    return f"{int(major)}.{int(minor)}"


async def probe_glibc_version() -> Optional[str]:
    """Run the libc probe command; None when it is missing, fails, or is not glibc."""
    try:
        output = await run_command_async(LIBC_PROBE_COMMAND)
    except ProcessError as e:
        logger.debug(f"glibc probe failed: {e}")
        return None
    version = parse_glibc_version(output)
    if version:
        logger.debug(f"Detected glibc version {version}")
    return version


async def detect_platform() -> PlatformInfo:
    """Describe the running host. Spawns the libc probe on Linux only."""
    os_name = normalize_os(sys.platform, _running_on_android())
    arch = normalize_arch(platform.machine())
    glibc_version = None
    if os_name == OS_LINUX:
        glibc_version = await probe_glibc_version()
        if glibc_version is None:
            logger.warning(
                "Could not determine glibc version. Defaulting to musl builds for safety."
            )
    return PlatformInfo(os_name=os_name, arch=arch, glibc_version=glibc_version)


def prefers_gnu(glibc_version: Optional[str], min_glibc: str) -> bool:
    """True when the host glibc is known and at least `min_glibc`."""
    if glibc_version is None:
        return False
    try:
        return Version(glibc_version) >= Version(min_glibc)
    except InvalidVersion:
        logger.warning(f"Unparsable glibc version {glibc_version!r}; preferring musl")
        return False


def os_targets_for(tool: ToolSpec, platform_info: PlatformInfo) -> List[str]:
    """
    Ordered platform tokens to look for in asset names, most specific first.

    Raises:
        AssetNotFoundError: If the operating system is not supported at all.
    """
    os_name = platform_info.os_name
    if os_name in (OS_LINUX, OS_ANDROID):
        if tool.generic_linux_target:
            return [LINUX_GENERIC_TARGET]
        if os_name == OS_LINUX and prefers_gnu(
            platform_info.glibc_version, tool.min_glibc
        ):
            return [LINUX_GNU_TARGET, LINUX_MUSL_TARGET]
        if os_name == OS_LINUX and platform_info.glibc_version is not None:
            logger.info(
                f"System glibc {platform_info.glibc_version} is older than "
                f"{tool.min_glibc} required by {tool.name}. Prioritizing musl build."
            )
        return [LINUX_MUSL_TARGET, LINUX_GNU_TARGET]
    if os_name == OS_MACOS:
        return [MACOS_TARGET]
    if os_name == OS_WINDOWS:
        return [WINDOWS_TARGET]
    raise AssetNotFoundError(
        tool.name,
        os_name,
        platform_info.arch,
        details=f"unsupported operating system '{os_name}'",
    )


def archive_extension_for(tool: ToolSpec, os_name: str) -> str:
    """Archive extension to match; Android uses the Linux assets and their overrides."""
    if os_name == OS_WINDOWS:
        return WINDOWS_ARCHIVE_EXTENSION
    if os_name == OS_ANDROID:
        os_name = OS_LINUX
    return tool.archive_extensions.get(os_name, DEFAULT_ARCHIVE_EXTENSION)


def find_best_asset_match(
    base_name: str,
    assets: Sequence[ReleaseAsset],
    arch: str,
    os_targets: Sequence[str],
    extension: str,
) -> Optional[ReleaseAsset]:
    """
    Return the first asset whose lowercased name contains every fragment.

    Tokens are tried in priority order and the whole asset list is scanned for
    each token before moving to the next one. Only names ending in `extension`
    are candidates, so checksum and signature siblings are skipped.
    """
    suffix = f".{extension.lower()}"
    for os_target in os_targets:
        fragments: Tuple[str, ...] = tuple(
            f.lower() for f in (base_name, arch, os_target, extension)
        )
        logger.debug(f"Searching for asset with fragments {fragments}")
        for asset in assets:
            if not asset.download_url:
                continue
            lowered = asset.name.lower()
            if not lowered.endswith(suffix):
                continue
            if all(fragment in lowered for fragment in fragments):
                logger.debug(f"Found matching release asset {asset.name}")
                return asset
    return None


def select_asset(
    tool: ToolSpec, release: Release, platform_info: PlatformInfo
) -> ReleaseAsset:
    """
    Choose the asset for `tool` from an already fetched release.

    Raises:
        AssetNotFoundError: When nothing matches. Never retried: the data will not change.
    """
    os_targets = os_targets_for(tool, platform_info)
    extension = archive_extension_for(tool, platform_info.os_name)
    asset = find_best_asset_match(
        tool.match_name, release.assets, platform_info.arch, os_targets, extension
    )
    if asset is None:
        raise AssetNotFoundError(
            tool.name,
            platform_info.os_name,
            platform_info.arch,
            details=f"searched {len(release.assets)} assets of release {release.tag_name or '<unknown>'}",
        )
    logger.info(f"Selected {asset.name} for {tool.name}")
    return asset


async def resolve_release_asset(
    client: AsyncGitHubClient,
    tool: ToolSpec,
    platform_info: PlatformInfo,
    tag: Optional[str] = None,
) -> Tuple[Release, ReleaseAsset]:
    """
    Fetch the release (latest, or the exact `tag`) and pick the matching asset.

    Only the fetch is retried, inside the client.
    """
    # Unsupported platforms fail before any request is made
    os_targets_for(tool, platform_info)
    release = await client.get_release(tool.repo, tag)
    return release, select_asset(tool, release, platform_info)

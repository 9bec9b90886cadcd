"""
isoterm Download Subsystem

Core Components:
- interfaces: Release data model and the progress reporting protocol
- async_client: GitHub release API client and the shared retry loop
- resolver: Platform detection and release asset matching
- async_downloader: Streaming downloads into temporary files
- files: Archive extraction (single file, full tree, sub-tree)
"""

from .async_client import AsyncGitHubClient, call_with_retry, parse_release
from .async_downloader import AsyncDownloader, DownloadHandle
from .files import (
    ArchiveKind,
    extract_full_tree,
    extract_single_file,
    extract_sub_tree,
)
from .interfaces import NullReporter, ProgressReporter, Release, ReleaseAsset
from .resolver import (
    PlatformInfo,
    detect_platform,
    find_best_asset_match,
    resolve_release_asset,
)

__all__ = [
    "ArchiveKind",
    "AsyncDownloader",
    "AsyncGitHubClient",
    "DownloadHandle",
    "NullReporter",
    "PlatformInfo",
    "ProgressReporter",
    "Release",
    "ReleaseAsset",
    "call_with_retry",
    "detect_platform",
    "extract_full_tree",
    "extract_single_file",
    "extract_sub_tree",
    "find_best_asset_match",
    "parse_release",
    "resolve_release_asset",
]

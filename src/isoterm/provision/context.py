"""
Shared state handed to every provisioning task.
"""

import enum
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from isoterm.constants import BIN_DIR_NAME, CONFIG_DIR_NAME, DATA_DIR_NAME
from isoterm.tools import ToolSpec

from ..download.async_client import AsyncGitHubClient
from ..download.async_downloader import AsyncDownloader
from ..download.interfaces import NullReporter, ProgressReporter
from ..download.resolver import PlatformInfo

ReporterFactory = Callable[[ToolSpec], ProgressReporter]


@dataclass(frozen=True)
class EnvironmentLayout:
    """Paths of one isolated environment tree."""

    root: Path

    @property
    def bin_dir(self) -> Path:
        return self.root / BIN_DIR_NAME

    @property
    def config_dir(self) -> Path:
        return self.root / CONFIG_DIR_NAME

    @property
    def data_dir(self) -> Path:
        return self.root / DATA_DIR_NAME

    def tool_dir(self, tool: ToolSpec) -> Path:
        """Directory owned by a full-archive install of `tool`."""
        return self.root / tool.install_dir_name


def null_reporter_factory(tool: ToolSpec) -> ProgressReporter:
    return NullReporter()


@dataclass
class ProvisionContext:
    """
    Everything a tool task needs; the only state tasks share.

    Attributes:
        layout: Target environment.
        client: Shared release API client.
        downloader: Downloader bound to `client`'s session.
        platform: Host facts, probed once per run.
        search_path: PATH-style string searched for system binaries, None for os.environ["PATH"].
        reporter_factory: Creates one progress reporter per tool.
    """

    layout: EnvironmentLayout
    client: AsyncGitHubClient
    downloader: AsyncDownloader
    platform: PlatformInfo
    search_path: Optional[str] = None
    reporter_factory: ReporterFactory = null_reporter_factory

    def find_system_binary(self, name: str) -> Optional[Path]:
        """Locate an executable called `name` on the search path."""
        found = shutil.which(name, path=self.search_path)
        return Path(found) if found else None


class OutcomeStatus(enum.Enum):
    ALREADY_PRESENT = "already_present"
    SYMLINKED_FROM_SYSTEM = "symlinked_from_system"
    INSTALLED_FROM_RELEASE = "installed_from_release"
    FAILED = "failed"


@dataclass
class ProvisionOutcome:
    """Result of provisioning one tool."""

    tool: ToolSpec
    """The tool this outcome belongs to"""

    status: OutcomeStatus
    """Which acquisition path was taken"""

    detail: Optional[str] = None
    """Link target, installed asset name, or failure cause"""

    error: Optional[Exception] = None
    """The exception behind a FAILED outcome"""

    @classmethod
    def failed(cls, tool: ToolSpec, error: Exception) -> "ProvisionOutcome":
        return cls(tool=tool, status=OutcomeStatus.FAILED, detail=str(error), error=error)

    @property
    def succeeded(self) -> bool:
        return self.status is not OutcomeStatus.FAILED

"""
Declarations of the tools isoterm provisions.

Adding a tool means adding one ToolSpec to TOOLS and picking its variant; the
provisioner and orchestrator never branch on tool names.
"""

import enum
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

from isoterm.constants import (
    DEFAULT_MIN_GLIBC_VERSION,
    FISH_RUNTIME_DIR_NAME,
    OS_LINUX,
    OS_MACOS,
    OS_WINDOWS,
)


class ToolVariant(enum.Enum):
    """Tool-specific behaviour on top of the common acquisition policy."""

    SIMPLE = "simple"
    REQUIRES_AUX_DATA = "requires_aux_data"
    VERSION_LOCKED_RUNTIME = "version_locked_runtime"


@dataclass(frozen=True)
class ToolSpec:
    """
    Immutable description of one tool.

    Attributes:
        name: Tool identifier, also the asset base name to match.
        repo: GitHub repository in `owner/name` form.
        binary_name: Executable name placed in `bin/`.
        path_in_archive: Binary location inside the extracted archive. When set,
            the whole archive is extracted and the binary is symlinked;
            otherwise only the executable is extracted.
        variant: Which extra provisioning steps the tool needs.
        install_dir: Directory under the environment root for full-archive
            installs; defaults to `name`.
        archive_extensions: Per-OS archive extension overrides, stored read-only.
        generic_linux_target: The tool ships one `linux` asset without a libc suffix.
        min_glibc: Oldest glibc the tool's GNU build runs on.
    """

    name: str
    repo: str
    binary_name: str
    path_in_archive: Optional[str] = None
    variant: ToolVariant = ToolVariant.SIMPLE
    install_dir: Optional[str] = None
    archive_extensions: Mapping[str, str] = field(default_factory=dict)
    generic_linux_target: bool = False
    min_glibc: str = DEFAULT_MIN_GLIBC_VERSION

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "archive_extensions", MappingProxyType(dict(self.archive_extensions))
        )

    def __hash__(self) -> int:
        return hash((self.name, self.repo))

    @property
    def match_name(self) -> str:
        """Base name matched against asset file names."""
        return self.name.rsplit("/", 1)[-1]

    def executable_name(self, os_name: str) -> str:
        """File name of the executable on `os_name` (`.exe` suffix on Windows)."""
        if os_name == OS_WINDOWS and not self.binary_name.endswith(".exe"):
            return f"{self.binary_name}.exe"
        return self.binary_name

    @property
    def install_dir_name(self) -> str:
        return self.install_dir or self.name

    @property
    def is_full_archive(self) -> bool:
        return self.path_in_archive is not None


FISH = ToolSpec(
    name="fish",
    repo="fish-shell/fish-shell",
    binary_name="fish",
    path_in_archive="bin/fish",
    variant=ToolVariant.REQUIRES_AUX_DATA,
    install_dir=FISH_RUNTIME_DIR_NAME,
    archive_extensions={OS_LINUX: "tar.xz", OS_MACOS: "tar.xz"},
    generic_linux_target=True,
)

STARSHIP = ToolSpec(name="starship", repo="starship/starship", binary_name="starship")

ZOXIDE = ToolSpec(name="zoxide", repo="ajeetdsouza/zoxide", binary_name="zoxide")

ATUIN = ToolSpec(name="atuin", repo="atuinsh/atuin", binary_name="atuin")

RIPGREP = ToolSpec(name="ripgrep", repo="BurntSushi/ripgrep", binary_name="rg")

HELIX = ToolSpec(
    name="helix",
    repo="helix-editor/helix",
    binary_name="hx",
    path_in_archive="hx",
    variant=ToolVariant.VERSION_LOCKED_RUNTIME,
    archive_extensions={OS_LINUX: "tar.xz", OS_MACOS: "zip"},
    generic_linux_target=True,
)

TOOLS: Tuple[ToolSpec, ...] = (FISH, STARSHIP, ZOXIDE, ATUIN, RIPGREP, HELIX)

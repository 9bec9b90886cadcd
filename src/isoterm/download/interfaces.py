"""
Core Interfaces for the isoterm download subsystem

This module defines the data structures shared by the release client, the
resolver, the downloader and the provisioners, plus the progress-reporting
protocol the core talks to without ever implementing a display itself.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Protocol, Union

Pathish = Union[str, Path]


@dataclass(frozen=True)
class ReleaseAsset:
    """Represents a downloadable asset attached to a release."""

    name: str
    """The filename of the asset"""

    download_url: str
    """Direct URL to download the asset (`browser_download_url`)"""

    size: int = 0
    """File size in bytes, 0 when unknown"""


@dataclass
class Release:
    """Represents a tagged release of a repository."""

    tag_name: str
    """The release tag/version identifier (e.g., '24.07')"""

    assets: List[ReleaseAsset] = field(default_factory=list)
    """List of downloadable assets for this release"""

    tarball_url: Optional[str] = None
    """URL of the source tarball GitHub generates for the tag"""


class ProgressReporter(Protocol):
    """
    Sink for progress updates of one tool.

    Implementations decide how (or whether) to render; the core only calls
    these methods.
    """

    def set_message(self, message: str) -> None: ...

    def set_length(self, length: Optional[int]) -> None: ...

    def set_position(self, position: int) -> None: ...

    def advance(self, amount: int) -> None: ...

    def finish(self, message: Optional[str] = None) -> None: ...

    def abandon(self, message: Optional[str] = None) -> None: ...


class NullReporter:
    """A ProgressReporter that records the last message and renders nothing."""

    def __init__(self) -> None:
        self.message: Optional[str] = None
        self.length: Optional[int] = None
        self.position = 0
        self.finished = False
        self.abandoned = False

    def set_message(self, message: str) -> None:
        self.message = message

    def set_length(self, length: Optional[int]) -> None:
        self.length = length

    def set_position(self, position: int) -> None:
        self.position = position

    def advance(self, amount: int) -> None:
        self.position += amount

    def finish(self, message: Optional[str] = None) -> None:
        if message:
            self.message = message
        self.finished = True

    def abandon(self, message: Optional[str] = None) -> None:
        if message:
            self.message = message
        self.abandoned = True

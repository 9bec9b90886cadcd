"""
Archive extraction for the isoterm download subsystem

Release archives come in three formats (tar+gzip, tar+xz, zip) and are
consumed in three shapes: one executable, the whole tree minus its wrapping
directory, or a single named data directory. Format and shape are independent,
so every shape works on every format through a small member abstraction.
"""

import enum
import lzma
import os
import shutil
import stat
import tarfile
import zipfile
import zlib
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import IO, Callable, Iterator, List, Optional, Tuple, Union

from isoterm.exceptions import ArchiveError
from isoterm.log_utils import logger

from .interfaces import Pathish

ArchiveSource = Union[Pathish, IO[bytes]]

_CORRUPTION_ERRORS = (
    tarfile.TarError,
    zipfile.BadZipFile,
    EOFError,
    lzma.LZMAError,
    zlib.error,
)


class ArchiveKind(enum.Enum):
    """Supported archive formats, keyed by file name suffix."""

    TAR_GZ = ".tar.gz"
    TAR_XZ = ".tar.xz"
    ZIP = ".zip"

    @classmethod
    def from_name(cls, name: str) -> "ArchiveKind":
        """
        Determine the archive kind from an asset's file name.

        Raises:
            ArchiveError: If the suffix is not a supported archive format.
        """
        lowered = name.lower()
        if lowered.endswith((".tar.gz", ".tgz")):
            return cls.TAR_GZ
        if lowered.endswith((".tar.xz", ".txz")):
            return cls.TAR_XZ
        if lowered.endswith(".zip"):
            return cls.ZIP
        raise ArchiveError(f"Unsupported archive format for {name}")


@dataclass
class _Member:
    """Format-neutral view of one archive entry."""

    name: str
    is_dir: bool
    is_file: bool
    mode: Optional[int]
    linkname: Optional[str]
    open: Callable[[], IO[bytes]]

    @property
    def parts(self) -> Tuple[str, ...]:
        return tuple(p for p in PurePosixPath(self.name).parts if p not in ("", "."))


def _is_within_base(real_base_dir: str, candidate: str) -> bool:
    try:
        return os.path.commonpath([real_base_dir, candidate]) == real_base_dir
    except ValueError:
        return False


def is_safe_archive_member(member_name: str) -> bool:
    """
    Determine whether an archive member name is safe to extract.

    Returns:
        `True` if the member name contains no absolute paths, parent-directory references, or null bytes, `False` otherwise.
    """
    if not member_name or member_name.startswith(("/", "\\")):
        return False
    if "\x00" in member_name:
        return False
    normalized = os.path.normpath(member_name)
    if os.path.isabs(normalized):
        return False
    if normalized == ".." or normalized.startswith(f"..{os.sep}"):
        return False
    if os.altsep and normalized.startswith(f"..{os.altsep}"):
        return False
    return ".." not in PurePosixPath(member_name.replace("\\", "/")).parts


def safe_extract_path(extract_dir: Pathish, relative: str) -> str:
    """
    Resolve a safe absolute extraction path and prevent directory traversal.

    Raises:
        ArchiveError: If the resolved path is outside extract_dir.
    """
    real_extract_dir = os.path.realpath(extract_dir)
    normalized_path = os.path.realpath(os.path.join(real_extract_dir, relative))
    if not _is_within_base(real_extract_dir, normalized_path):
        raise ArchiveError(
            f"Unsafe extraction path '{relative}' is outside base '{extract_dir}'"
        )
    return normalized_path


def _iter_tar_members(tar: tarfile.TarFile) -> Iterator[_Member]:
    for info in tar:

        def _open(info: tarfile.TarInfo = info) -> IO[bytes]:
            stream = tar.extractfile(info)
            if stream is None:
                raise ArchiveError(f"Cannot read archive member {info.name}")
            return stream

        yield _Member(
            name=info.name,
            is_dir=info.isdir(),
            is_file=info.isreg(),
            mode=info.mode,
            linkname=info.linkname if info.issym() else None,
            open=_open,
        )


def _iter_zip_members(archive: zipfile.ZipFile) -> Iterator[_Member]:
    for info in archive.infolist():
        unix_mode = (info.external_attr >> 16) & 0xFFFF
        is_link = stat.S_ISLNK(unix_mode)
        linkname = archive.read(info).decode("utf-8") if is_link else None
        yield _Member(
            name=info.filename,
            is_dir=info.is_dir(),
            is_file=not info.is_dir() and not is_link,
            mode=stat.S_IMODE(unix_mode) or None,
            linkname=linkname,
            open=lambda info=info: archive.open(info),
        )


def _iter_members(
    source: ArchiveSource, kind: ArchiveKind
) -> Iterator[_Member]:
    """Yield the members of an archive, translating format errors into ArchiveError."""
    try:
        if kind is ArchiveKind.ZIP:
            with zipfile.ZipFile(source) as archive:  # type: ignore[arg-type]
                yield from _iter_zip_members(archive)
        else:
            mode = "r:gz" if kind is ArchiveKind.TAR_GZ else "r:xz"
            if isinstance(source, (str, Path)):
                tar = tarfile.open(source, mode)
            else:
                tar = tarfile.open(fileobj=source, mode=mode)
            with tar:
                yield from _iter_tar_members(tar)
    except _CORRUPTION_ERRORS as e:
        raise ArchiveError(
            "The downloaded archive is corrupted or in an unexpected format", str(e)
        ) from e
    except (OSError, ValueError) as e:
        # gzip reports truncated or garbage streams as OSError
        raise ArchiveError(f"Error reading {kind.value} archive", str(e)) from e


def _write_member(member: _Member, target: str) -> None:
    os.makedirs(os.path.dirname(target), exist_ok=True)
    if os.path.lexists(target):
        os.remove(target)
    try:
        with member.open() as src, open(target, "wb") as dst:
            shutil.copyfileobj(src, dst)
    except _CORRUPTION_ERRORS as e:
        raise ArchiveError(f"Corrupt archive member {member.name}", str(e)) from e
    if os.name != "nt" and member.mode:
        os.chmod(target, member.mode & 0o7777)


def _link_member(member: _Member, target: str, root: Pathish) -> bool:
    """Recreate a symlink member; links that would escape `root` are skipped and give False."""
    assert member.linkname is not None
    resolved = os.path.realpath(
        os.path.join(os.path.dirname(target), member.linkname)
    )
    if os.path.isabs(member.linkname) or not _is_within_base(
        os.path.realpath(root), resolved
    ):
        logger.warning(
            "Skipping archive symlink %s -> %s (points outside the extraction directory)",
            member.name,
            member.linkname,
        )
        return False
    os.makedirs(os.path.dirname(target), exist_ok=True)
    if os.path.lexists(target):
        os.remove(target)
    os.symlink(member.linkname, target)
    return True


def _place_member(member: _Member, relative: str, target_dir: Pathish) -> Optional[str]:
    """Extract one member to `target_dir/relative`; returns the written path."""
    out_path = safe_extract_path(target_dir, relative)
    if member.is_dir:
        os.makedirs(out_path, exist_ok=True)
        return None
    if member.linkname is not None:
        if os.name == "nt":
            logger.debug(f"Skipping symlink member {member.name} on Windows")
            return None
        return out_path if _link_member(member, out_path, target_dir) else None
    if not member.is_file:
        logger.debug(f"Skipping special archive member {member.name}")
        return None
    _write_member(member, out_path)
    return out_path


def extract_single_file(
    source: ArchiveSource,
    kind: ArchiveKind,
    target_dir: Pathish,
    file_name: str,
) -> Path:
    """
    Extract the first regular file whose base name equals `file_name` into `target_dir`.

    Parameters:
        source (ArchiveSource): Archive path or binary file object.
        kind (ArchiveKind): Archive format.
        target_dir (Pathish): Directory to write the file into.
        file_name (str): Base name to look for, e.g. "rg".

    Returns:
        Path: The extracted file (`target_dir/file_name`).

    Raises:
        ArchiveError: If no such entry exists or the archive cannot be read.
    """
    os.makedirs(target_dir, exist_ok=True)
    for member in _iter_members(source, kind):
        if not member.is_file or not is_safe_archive_member(member.name):
            continue
        if PurePosixPath(member.name).name != file_name:
            continue
        target = safe_extract_path(target_dir, file_name)
        _write_member(member, target)
        logger.debug(f"Extracted {member.name} to {target}")
        return Path(target)

    raise ArchiveError(f"Could not find '{file_name}' inside the downloaded archive")


def strip_top_level(parts: Tuple[str, ...], is_dir: bool) -> Optional[str]:
    """
    Drop the wrapping directory from a member path.

    Multi-component paths lose exactly their first component. A lone directory
    component is the wrapper itself and yields None; a lone file is kept.
    """
    if not parts:
        return None
    if len(parts) == 1:
        return None if is_dir else parts[0]
    return "/".join(parts[1:])


def extract_full_tree(
    source: ArchiveSource,
    kind: ArchiveKind,
    target_dir: Pathish,
) -> List[Path]:
    """
    Extract every entry of an archive, stripping the release's wrapping directory.

    Returns:
        List[Path]: Paths of the files and links written.

    Raises:
        ArchiveError: If the archive cannot be read or contains unsafe paths.
    """
    os.makedirs(target_dir, exist_ok=True)
    written: List[Path] = []
    for member in _iter_members(source, kind):
        if not is_safe_archive_member(member.name):
            logger.warning(
                "Skipping unsafe archive member %s (possible traversal)", member.name
            )
            continue
        relative = strip_top_level(member.parts, member.is_dir)
        if relative is None:
            continue
        placed = _place_member(member, relative, target_dir)
        if placed:
            written.append(Path(placed))
    logger.debug(f"Extracted {len(written)} entries into {target_dir}")
    return written


def sub_tree_path(parts: Tuple[str, ...], segment: str) -> Optional[str]:
    """
    Return the portion of a member path after the first `segment` component.

    Returns "" for the segment directory itself and None when the path does not
    contain the segment at all.
    """
    try:
        index = parts.index(segment)
    except ValueError:
        return None
    return "/".join(parts[index + 1 :])


def extract_sub_tree(
    source: ArchiveSource,
    kind: ArchiveKind,
    target_dir: Pathish,
    segment: str,
) -> List[Path]:
    """
    Extract only the entries below a named directory, re-rooted at `target_dir`.

    `pkg-1.0/share/fish/config.fish` extracted with segment "share" lands at
    `target_dir/fish/config.fish`.

    Returns:
        List[Path]: Paths of the files and links written.
    """
    os.makedirs(target_dir, exist_ok=True)
    written: List[Path] = []
    for member in _iter_members(source, kind):
        if not is_safe_archive_member(member.name):
            continue
        relative = sub_tree_path(member.parts, segment)
        if not relative:
            continue
        placed = _place_member(member, relative, target_dir)
        if placed:
            written.append(Path(placed))
    if not written:
        logger.warning(f"No entries under '{segment}' found in archive")
    logger.debug(f"Extracted {len(written)} '{segment}' entries into {target_dir}")
    return written

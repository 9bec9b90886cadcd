"""
Relative symlink creation.

Links are stored relative to the link's parent directory so an environment
keeps working after it is moved as a whole.
"""

import os
from pathlib import Path

from isoterm.exceptions import SymlinkError
from isoterm.log_utils import logger

from ..download.interfaces import Pathish


def relative_link_target(original: Pathish, link: Pathish) -> str:
    """
    Compute the path stored in `link` so that it resolves to `original`.

    Raises:
        SymlinkError: If no relative path exists, e.g. across Windows drives.
    """
    link_parent = os.path.dirname(os.path.abspath(link))
    try:
        return os.path.relpath(os.path.abspath(original), link_parent)
    except ValueError as e:
        raise SymlinkError(
            f"Could not compute a relative path from {link_parent} to {original}",
            link=str(link),
            details=str(e),
        ) from e


def create_symlink(original: Pathish, link: Pathish) -> Path:
    """
    Create `link` pointing at `original` through a relative path.

    Parameters:
        original (Pathish): Existing file or directory the link should resolve to.
        link (Pathish): Path of the link to create; its parent must exist.

    Returns:
        Path: The created link.

    Raises:
        SymlinkError: If the relative path cannot be computed or the OS refuses the link.
    """
    target = relative_link_target(original, link)
    is_directory = os.path.isdir(original)
    try:
        os.symlink(target, link, target_is_directory=is_directory)
    except (OSError, NotImplementedError) as e:
        raise SymlinkError(
            f"Failed to create symlink {link} -> {target}",
            link=str(link),
            details=str(e),
        ) from e
    logger.debug(f"Linked {link} -> {target}")
    return Path(link)

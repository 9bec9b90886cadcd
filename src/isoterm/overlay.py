"""
Config overlay: expose the user's unmanaged configuration inside the environment.

The activation script points XDG_CONFIG_HOME at `<env>/config`. Entries of the
user's own config home that the environment does not generate are linked in,
so tools outside the managed set keep finding their settings.
"""

import os
from pathlib import Path
from typing import List, Optional

from isoterm.constants import CONFIG_DIR_NAME
from isoterm.exceptions import SymlinkError
from isoterm.log_utils import logger


def default_user_config_home() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg).expanduser()
    return Path.home() / ".config"


def forward_user_config(
    env_dir: Path, user_config_home: Optional[Path] = None
) -> List[Path]:
    """
    Link every entry of `user_config_home` missing from `<env_dir>/config`.

    Links are absolute because their targets live outside the environment.
    Entries already present in the environment, managed or not, are left as is.

    Parameters:
        env_dir (Path): Environment root.
        user_config_home (Optional[Path]): The user's config home; defaults to
            XDG_CONFIG_HOME or `~/.config`.

    Returns:
        List[Path]: The links created.

    Raises:
        SymlinkError: If a link cannot be created.
    """
    source_home = Path(user_config_home or default_user_config_home())
    env_config = Path(env_dir) / CONFIG_DIR_NAME
    if not source_home.is_dir():
        logger.debug(f"No user config home at {source_home}; nothing to forward")
        return []

    real_env = os.path.realpath(env_dir)
    if os.path.realpath(source_home) == os.path.realpath(env_config):
        return []

    env_config.mkdir(parents=True, exist_ok=True)
    created: List[Path] = []
    for entry in sorted(source_home.iterdir()):
        link = env_config / entry.name
        if os.path.lexists(link):
            continue
        real_entry = os.path.realpath(entry)
        if real_entry == real_env or real_entry.startswith(real_env + os.sep):
            # never link the environment into itself
            continue
        try:
            os.symlink(
                os.path.abspath(entry), link, target_is_directory=entry.is_dir()
            )
        except OSError as e:
            raise SymlinkError(
                f"Failed to forward {entry} into the environment",
                link=str(link),
                details=str(e),
            ) from e
        created.append(link)

    logger.info(f"Forwarded {len(created)} user config entries into {env_config}")
    return created

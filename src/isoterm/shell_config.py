"""
Static configuration written into a freshly provisioned environment.

Generates the activation script plus default fish, starship and atuin
configuration. The activation script derives every path from its own location
at runtime; the atuin config is the one file holding absolute paths.
"""

import os
from pathlib import Path
from typing import List

from isoterm.constants import (
    ACTIVATE_SCRIPT_NAME,
    BIN_DIR_NAME,
    CONFIG_DIR_NAME,
    DATA_DIR_NAME,
    EXECUTABLE_PERMISSIONS,
    FISH_RUNTIME_DIR_NAME,
)
from isoterm.exceptions import ConfigGenerationError
from isoterm.log_utils import logger

ACTIVATE_TEMPLATE = """#!/bin/sh
# Enter the isolated shell environment. Generated by isoterm.

THIS_SCRIPT=$(readlink -f "$0" 2>/dev/null || realpath "$0" 2>/dev/null || echo "$0")
ENV_DIR=$(cd "$(dirname "$THIS_SCRIPT")" && pwd -P)

export PATH="$ENV_DIR/{bin_dir}:$PATH"
export XDG_CONFIG_HOME="$ENV_DIR/{config_dir}"
export STARSHIP_CONFIG="$ENV_DIR/{config_dir}/starship.toml"
export ATUIN_CONFIG_DIR="$ENV_DIR/{config_dir}/atuin"
export FISH_HOME="$ENV_DIR/{fish_runtime}"
if [ -d "$ENV_DIR/helix/runtime" ]; then
    export HELIX_RUNTIME="$ENV_DIR/helix/runtime"
fi

exec "$ENV_DIR/{bin_dir}/fish" -l
"""

FISH_CONFIG = """# Generated by isoterm

# Starship prompt
starship init fish | source

# Atuin shell history
atuin init fish | source

# Zoxide directory jumper
zoxide init fish | source

echo "Welcome to your isolated shell environment!"
echo "Type 'exit' to return to your regular shell."
"""

STARSHIP_CONFIG = """# Generated by isoterm
# Inserts a blank line between shell prompts
add_newline = true

[character]
success_symbol = "[➜](bold green)"
error_symbol = "[➜](bold red)"
"""

ATUIN_CONFIG_TEMPLATE = """# Generated by isoterm
# History lives inside the environment's data directory.
db_path = "{db_path}"
key_path = "{key_path}"

sync_frequency = "5m"
sync_address = "https://api.atuin.sh"
"""


def _write(path: Path, content: str) -> Path:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    except OSError as e:
        raise ConfigGenerationError(f"Failed to write {path}", str(e)) from e
    logger.debug(f"Wrote {path}")
    return path


def write_activate_script(env_dir: Path) -> Path:
    script = _write(
        env_dir / ACTIVATE_SCRIPT_NAME,
        ACTIVATE_TEMPLATE.format(
            bin_dir=BIN_DIR_NAME,
            config_dir=CONFIG_DIR_NAME,
            fish_runtime=FISH_RUNTIME_DIR_NAME,
        ),
    )
    if os.name != "nt":
        try:
            os.chmod(script, EXECUTABLE_PERMISSIONS)
        except OSError as e:
            raise ConfigGenerationError(
                f"Failed to make {script} executable", str(e)
            ) from e
    return script


def write_fish_config(config_dir: Path) -> Path:
    return _write(config_dir / "fish" / "config.fish", FISH_CONFIG)


def write_starship_config(config_dir: Path) -> Path:
    return _write(config_dir / "starship.toml", STARSHIP_CONFIG)


def write_atuin_config(config_dir: Path, data_dir: Path) -> Path:
    """Atuin does not expand variables in its config, so absolute paths are written."""
    atuin_data = data_dir / "atuin"
    try:
        atuin_data.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigGenerationError(f"Failed to create {atuin_data}", str(e)) from e
    content = ATUIN_CONFIG_TEMPLATE.format(
        db_path=(atuin_data / "history.db").as_posix(),
        key_path=(atuin_data / "key").as_posix(),
    )
    return _write(config_dir / "atuin" / "config.toml", content)


def generate_configs(env_dir: Path) -> List[Path]:
    """
    Write every generated file of the environment rooted at `env_dir`.

    Parameters:
        env_dir (Path): Environment root; `config/` and `data/` are created if missing.

    Returns:
        List[Path]: The files written.

    Raises:
        ConfigGenerationError: If any file or directory cannot be written.
    """
    env_dir = Path(env_dir)
    config_dir = env_dir / CONFIG_DIR_NAME
    data_dir = env_dir / DATA_DIR_NAME
    written = [
        write_activate_script(env_dir),
        write_fish_config(config_dir),
        write_starship_config(config_dir),
        write_atuin_config(config_dir, data_dir),
    ]
    logger.info(f"Generated {len(written)} configuration files in {env_dir}")
    return written

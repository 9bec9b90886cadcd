"""
Constants and configuration values for isoterm.

This module contains all hardcoded values, URLs, timeouts, and other constants
used throughout the application.
"""

# GitHub API
GITHUB_API_BASE = "https://api.github.com"
GITHUB_API_VERSION = "2022-11-28"
GITHUB_TOKEN_ENV_VAR = "GITHUB_TOKEN"

# Network timeouts and retries (in seconds)
DEFAULT_REQUEST_TIMEOUT = 60
DEFAULT_CONNECT_RETRIES = 3
DEFAULT_RETRY_DELAY = 0.5
DEFAULT_BACKOFF_FACTOR = 2.0
DEFAULT_MAX_RETRY_DELAY = 10.0
DEFAULT_CHUNK_SIZE = 8192
DEFAULT_CONNECTOR_LIMIT = 10

# HTTP status thresholds
HTTP_STATUS_ERROR_THRESHOLD = 400
HTTP_STATUS_RETRY_THRESHOLD = 500
HTTP_STATUS_TOO_MANY_REQUESTS = 429
HTTP_STATUS_FORBIDDEN = 403

BYTES_PER_MEGABYTE = 1024 * 1024
FILE_SIZE_MB_LOGGING_THRESHOLD = 1.0

# Environment layout
DEFAULT_ENV_DIR = "~/.local_shell"
BIN_DIR_NAME = "bin"
CONFIG_DIR_NAME = "config"
DATA_DIR_NAME = "data"
ACTIVATE_SCRIPT_NAME = "activate.sh"
EXECUTABLE_PERMISSIONS = 0o755

# Platform tokens used in release asset names
LINUX_GNU_TARGET = "unknown-linux-gnu"
LINUX_MUSL_TARGET = "unknown-linux-musl"
LINUX_GENERIC_TARGET = "linux"
MACOS_TARGET = "apple-darwin"
WINDOWS_TARGET = "pc-windows-msvc"

OS_LINUX = "linux"
OS_ANDROID = "android"
OS_MACOS = "macos"
OS_WINDOWS = "windows"

ARCH_ALIASES = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "x64": "x86_64",
    "aarch64": "aarch64",
    "arm64": "aarch64",
    "armv8l": "aarch64",
}

# Tools whose GNU builds need a newer glibc fall back to musl below this version
DEFAULT_MIN_GLIBC_VERSION = "2.35"
LIBC_PROBE_COMMAND = ("ldd", "--version")
LIBC_VERSION_PATTERN = r"(\d+)\.(\d+)"

DEFAULT_ARCHIVE_EXTENSION = "tar.gz"
WINDOWS_ARCHIVE_EXTENSION = "zip"

# Tool specific data directories
FISH_RUNTIME_DIR_NAME = "fish_runtime"
FISH_SHARE_DIR_NAME = "share"
HELIX_RUNTIME_DIR_NAME = "runtime"
HELIX_USER_RUNTIME_DIR = "~/.config/helix/runtime"
HELIX_VERSION_PATTERN = r"helix (\d+\.\d+(?:\.\d+)?)"
VERSION_FLAG = "--version"

# Logging configuration
LOGGER_NAME = "isoterm"
LOG_LEVEL_ENV_VAR = "ISOTERM_LOG_LEVEL"
DEFAULT_LOG_LEVEL = "WARNING"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
INFO_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
DEBUG_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s: %(message)s"
LOG_FILE_NAME = "isoterm.log"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
LOG_FILE_BACKUP_COUNT = 5

# Configuration file
APP_NAME = "isoterm"
CONFIG_FILE_NAME = "config.yaml"
CONFIG_PATH_ENV_VAR = "ISOTERM_CONFIG"

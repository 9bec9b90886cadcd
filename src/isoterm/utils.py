import asyncio
import importlib.metadata
import subprocess
import threading
from typing import List, Optional, Sequence

from isoterm.exceptions import ProcessError
from isoterm.log_utils import logger

_USER_AGENT_CACHE: Optional[str] = None


def get_user_agent() -> str:
    """
    Get the User-Agent string used for HTTP requests.

    Returns:
        The string `isoterm/{version}`, where `{version}` is the installed package version or `unknown` if the version cannot be determined.
    """
    global _USER_AGENT_CACHE

    if _USER_AGENT_CACHE is None:
        try:
            app_version = importlib.metadata.version("isoterm")
        except importlib.metadata.PackageNotFoundError:
            app_version = "unknown"

        _USER_AGENT_CACHE = f"isoterm/{app_version}"

    return _USER_AGENT_CACHE


def run_command(args: Sequence[str]) -> str:
    """
    Run a command and return everything it wrote to stdout.

    Stdout is drained on a dedicated reader thread before the parent waits on the
    child, so a child that fills the pipe buffer can never deadlock against us.
    Stderr is discarded.

    Parameters:
        args (Sequence[str]): Program and arguments.

    Returns:
        str: Decoded stdout of the process.

    Raises:
        ProcessError: If the program cannot be started or exits with a non-zero status.
    """
    command = " ".join(str(a) for a in args)
    try:
        process = subprocess.Popen(
            [str(a) for a in args],
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            stdin=subprocess.DEVNULL,
        )
    except OSError as e:
        raise ProcessError(
            f"Failed to execute '{command}'", command=command, details=str(e)
        ) from e

    chunks: List[bytes] = []

    def _drain() -> None:
        assert process.stdout is not None
        with process.stdout:
            for block in iter(lambda: process.stdout.read(4096), b""):
                chunks.append(block)

    reader = threading.Thread(target=_drain, name=f"drain-{args[0]}", daemon=True)
    reader.start()
    reader.join()
    returncode = process.wait()

    output = b"".join(chunks).decode("utf-8", errors="replace")
    if returncode != 0:
        raise ProcessError(
            f"Command '{command}' exited with status {returncode}",
            command=command,
            returncode=returncode,
        )
    logger.debug(f"Command '{command}' produced {len(output)} characters of output")
    return output


async def run_command_async(args: Sequence[str]) -> str:
    """Run `run_command` on a worker thread so the event loop is never blocked."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, run_command, list(args))

"""
Per-tool acquisition policy.

The first applicable state wins:

1. ALREADY_PROVISIONED: `bin/<binary>` exists in the environment.
2. SYSTEM_LINK: the binary is on the search path; link it and run the
   strategy's post-symlink hook.
3. REMOTE_INSTALL: resolve, download and extract a release asset.

A tool that committed to a system binary never falls back to a download when
its link or hook fails; the failure is final for that tool and the run-level
rollback cleans up.
"""

import os

from isoterm.log_utils import logger
from isoterm.tools import ToolSpec

from .context import OutcomeStatus, ProvisionContext, ProvisionOutcome
from .strategies import strategy_for
from .symlinks import create_symlink


async def provision_tool(tool: ToolSpec, ctx: ProvisionContext) -> ProvisionOutcome:
    """
    Make `tool` available in the environment's `bin/` directory.

    Parameters:
        tool (ToolSpec): Tool to provision.
        ctx (ProvisionContext): Shared run state.

    Returns:
        ProvisionOutcome: ALREADY_PRESENT, SYMLINKED_FROM_SYSTEM or INSTALLED_FROM_RELEASE.

    Raises:
        IsotermError: Any failure; the caller turns it into a FAILED outcome.
    """
    reporter = ctx.reporter_factory(tool)
    executable = tool.executable_name(ctx.platform.os_name)
    bin_entry = ctx.layout.bin_dir / executable

    try:
        if os.path.islink(bin_entry) and not bin_entry.exists():
            logger.info(f"Removing dangling link {bin_entry}")
            bin_entry.unlink()

        if bin_entry.exists():
            logger.debug(f"{tool.name} already provisioned at {bin_entry}")
            reporter.finish(f"{tool.name} already installed")
            return ProvisionOutcome(tool, OutcomeStatus.ALREADY_PRESENT, str(bin_entry))

        strategy = strategy_for(tool)
        system_binary = ctx.find_system_binary(executable)
        if system_binary is not None:
            logger.info(f"Found system {tool.name} at {system_binary}")
            reporter.set_message(f"Linking system {tool.name}")
            create_symlink(system_binary, bin_entry)
            await strategy.post_symlink(tool, system_binary, ctx, reporter)
            reporter.finish(f"{tool.name} linked from {system_binary}")
            return ProvisionOutcome(
                tool, OutcomeStatus.SYMLINKED_FROM_SYSTEM, str(system_binary)
            )

        logger.info(f"{tool.name} not found on the system; installing from release")
        asset_name = await strategy.install_from_release(tool, ctx, reporter)
        reporter.finish(f"{tool.name} installed from {asset_name}")
        return ProvisionOutcome(tool, OutcomeStatus.INSTALLED_FROM_RELEASE, asset_name)
    except Exception as e:
        reporter.abandon(f"{tool.name} failed: {e}")
        raise

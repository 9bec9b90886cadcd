"""
Tests for the per-variant provisioning strategies.

Covers:
- Single-binary and full-archive release installs
- Source tarball data files for tools that need them
- Version-matched runtime download after linking a system binary
- Binary lookup inside extracted trees and version banner parsing
"""

import os
from unittest.mock import AsyncMock

import pytest

from isoterm.download.interfaces import NullReporter, Release
from isoterm.download.resolver import PlatformInfo
from isoterm.exceptions import (
    ArchiveError,
    AssetNotFoundError,
    NetworkError,
    ProcessError,
)
from isoterm.provision import strategies
from isoterm.provision.strategies import (
    AuxDataStrategy,
    SimpleStrategy,
    VersionLockedRuntimeStrategy,
    find_binary_in_tree,
    parse_tool_version,
    strategy_for,
)
from isoterm.tools import FISH, HELIX, RIPGREP, STARSHIP, ToolSpec, ToolVariant

pytestmark = [pytest.mark.unit]


# =============================================================================
# Helpers
# =============================================================================


class TestStrategyFor:
    def test_every_variant_has_a_strategy(self):
        assert isinstance(strategy_for(STARSHIP), SimpleStrategy)
        assert isinstance(strategy_for(FISH), AuxDataStrategy)
        assert isinstance(strategy_for(HELIX), VersionLockedRuntimeStrategy)
        assert set(strategies.STRATEGIES) == set(ToolVariant)


class TestFindBinaryInTree:
    def test_declared_path_wins(self, tmp_path):
        (tmp_path / "bin").mkdir()
        (tmp_path / "bin" / "fish").write_text("declared")
        (tmp_path / "fish").write_text("other")

        assert find_binary_in_tree(FISH, tmp_path, "fish") == tmp_path / "bin" / "fish"

    def test_falls_back_to_search(self, tmp_path):
        (tmp_path / "b").mkdir()
        (tmp_path / "a").mkdir()
        (tmp_path / "b" / "fish").write_text("b")
        (tmp_path / "a" / "fish").write_text("a")

        assert find_binary_in_tree(FISH, tmp_path, "fish") == tmp_path / "a" / "fish"

    def test_directories_are_not_binaries(self, tmp_path):
        (tmp_path / "hx").mkdir()

        with pytest.raises(ArchiveError, match="Could not find 'hx'"):
            find_binary_in_tree(HELIX, tmp_path, "hx")


class TestParseToolVersion:
    @pytest.mark.parametrize(
        "output, expected",
        [
            ("helix 25.01 (7275b7f8)\n", "25.01"),
            ("helix 24.03.1 (abcdef)", "24.03.1"),
        ],
    )
    def test_versions(self, output, expected):
        assert parse_tool_version(output) == expected

    def test_unparsable_output(self):
        with pytest.raises(ProcessError, match="Could not parse version"):
            parse_tool_version("hx: command not understood")


# =============================================================================
# Release installs
# =============================================================================


@pytest.mark.asyncio
class TestSimpleStrategy:
    async def test_single_binary_install(self, linux_releases, provision_context):
        ctx = provision_context()
        reporter = NullReporter()

        asset_name = await SimpleStrategy().install_from_release(RIPGREP, ctx, reporter)

        rg = ctx.layout.bin_dir / "rg"
        assert asset_name == "ripgrep-14.1.0-x86_64-unknown-linux-musl.tar.gz"
        assert rg.read_bytes() == b"rg-musl"
        assert os.access(rg, os.X_OK)
        assert not rg.is_symlink()
        assert sorted(p.name for p in ctx.layout.bin_dir.iterdir()) == ["rg"]

    async def test_gnu_build_preferred_on_recent_glibc(
        self, linux_releases, provision_context
    ):
        ctx = provision_context()

        await SimpleStrategy().install_from_release(STARSHIP, ctx, NullReporter())

        assert (ctx.layout.bin_dir / "starship").read_bytes() == b"starship-gnu"

    async def test_musl_build_on_old_glibc(self, linux_releases, provision_context):
        ctx = provision_context(platform=PlatformInfo("linux", "x86_64", "2.17"))

        await SimpleStrategy().install_from_release(STARSHIP, ctx, NullReporter())

        assert (ctx.layout.bin_dir / "starship").read_bytes() == b"starship-musl"

    async def test_full_archive_is_linked_into_bin(self, linux_releases, provision_context):
        ctx = provision_context()

        await VersionLockedRuntimeStrategy().install_from_release(
            HELIX, ctx, NullReporter()
        )

        hx = ctx.layout.bin_dir / "hx"
        helix_dir = ctx.layout.root / "helix"
        assert hx.is_symlink()
        assert os.readlink(hx) == os.path.join("..", "helix", "hx")
        assert hx.read_bytes() == b"hx-binary"
        assert (helix_dir / "runtime" / "themes" / "onedark.toml").exists()
        assert os.access(helix_dir / "hx", os.X_OK)

    async def test_stale_install_dir_is_replaced(self, linux_releases, provision_context):
        ctx = provision_context()
        stale = ctx.layout.root / "helix" / "stale.txt"
        stale.parent.mkdir()
        stale.write_text("old")

        await SimpleStrategy().install_from_release(HELIX, ctx, NullReporter())

        assert not stale.exists()
        assert (ctx.layout.root / "helix" / "hx").exists()

    async def test_missing_asset_downloads_nothing(
        self, release_server, provision_context
    ):
        release_server.add_release(
            "BurntSushi/ripgrep",
            "14.1.0",
            {"ripgrep-14.1.0-x86_64-pc-windows-msvc.zip": b"zip"},
        )
        ctx = provision_context()

        with pytest.raises(AssetNotFoundError):
            await SimpleStrategy().install_from_release(RIPGREP, ctx, NullReporter())

        assert release_server.requests == [
            "https://api.github.com/repos/BurntSushi/ripgrep/releases/latest"
        ]

    async def test_missing_binary_in_archive(
        self, release_server, archive_builder, provision_context
    ):
        release_server.add_release(
            "BurntSushi/ripgrep",
            "14.1.0",
            {
                "ripgrep-14.1.0-x86_64-unknown-linux-musl.tar.gz": archive_builder.tar(
                    [("ripgrep/README.md", b"readme")]
                )
            },
        )
        ctx = provision_context()

        with pytest.raises(ArchiveError, match="Could not find 'rg'"):
            await SimpleStrategy().install_from_release(RIPGREP, ctx, NullReporter())

    async def test_windows_executable_suffix(
        self, release_server, archive_builder, provision_context
    ):
        release_server.add_release(
            "BurntSushi/ripgrep",
            "14.1.0",
            {
                "ripgrep-14.1.0-x86_64-pc-windows-msvc.zip": archive_builder.zip(
                    [("ripgrep-14.1.0-x86_64-pc-windows-msvc/rg.exe", b"exe")]
                )
            },
        )
        ctx = provision_context(platform=PlatformInfo("windows", "x86_64"))

        await SimpleStrategy().install_from_release(RIPGREP, ctx, NullReporter())

        assert (ctx.layout.bin_dir / "rg.exe").read_bytes() == b"exe"


# =============================================================================
# Auxiliary data
# =============================================================================


@pytest.mark.asyncio
class TestAuxDataStrategy:
    async def test_share_from_release_archive(self, linux_releases, provision_context):
        ctx = provision_context()

        await AuxDataStrategy().install_from_release(FISH, ctx, NullReporter())

        fish_root = ctx.layout.root / "fish_runtime"
        assert (ctx.layout.bin_dir / "fish").read_bytes() == b"fish-binary"
        assert (fish_root / "share" / "config.fish").read_bytes() == b"# fish config"
        assert not any("tarball" in url for url in linux_releases.requests)

    async def test_share_from_source_tarball(
        self, release_server, register_releases, provision_context
    ):
        register_releases(release_server, fish_share=False)
        ctx = provision_context()

        await AuxDataStrategy().install_from_release(FISH, ctx, NullReporter())

        share = ctx.layout.root / "fish_runtime" / "share"
        assert (share / "config.fish").read_bytes() == b"# from source"
        assert (share / "functions" / "ls.fish").exists()
        assert not (share / "share").exists()
        assert not (ctx.layout.root / "fish_runtime" / "src").exists()
        assert release_server.requests[-1].endswith("/tarball/4.0.2")

    async def test_release_without_tarball(self, provision_context):
        ctx = provision_context()
        release = Release(tag_name="4.0.2", assets=[])

        with pytest.raises(ArchiveError, match="no source tarball"):
            await AuxDataStrategy().after_install(FISH, ctx, release, NullReporter())

    async def test_tarball_without_share(
        self, release_server, archive_builder, provision_context
    ):
        release_server.add_release(
            "fish-shell/fish-shell",
            "4.0.2",
            {},
            tarball=archive_builder.tar([("fish-shell-abc/src/main.rs", b"rust")]),
        )
        ctx = provision_context()
        release = Release(
            tag_name="4.0.2",
            tarball_url="https://api.github.com/repos/fish-shell/fish-shell/tarball/4.0.2",
        )

        with pytest.raises(ArchiveError, match="no 'share' directory"):
            await AuxDataStrategy().after_install(FISH, ctx, release, NullReporter())


# =============================================================================
# Version-locked runtime
# =============================================================================


@pytest.mark.asyncio
class TestVersionLockedRuntimeStrategy:
    async def test_fetches_runtime_matching_system_version(
        self, linux_releases, provision_context, mocker, tmp_path
    ):
        run = mocker.patch.object(
            strategies,
            "run_command_async",
            AsyncMock(return_value="helix 25.01 (7275b7f8)\n"),
        )
        linux_releases.requests.clear()
        ctx = provision_context()
        system_hx = tmp_path / "usr" / "bin" / "hx"

        await VersionLockedRuntimeStrategy().post_symlink(
            HELIX, system_hx, ctx, NullReporter()
        )

        run.assert_awaited_once_with([str(system_hx), "--version"])
        runtime = ctx.layout.root / "helix" / "runtime"
        assert (runtime / "themes" / "onedark.toml").read_bytes() == b"theme"
        assert not (ctx.layout.root / "helix" / "hx").exists()
        assert linux_releases.requests[0].endswith("/releases/tags/25.01")

    async def test_user_runtime_skips_download(
        self, linux_releases, provision_context, mocker
    ):
        user_runtime = os.path.expanduser("~/.config/helix/runtime")
        os.makedirs(user_runtime)
        run = mocker.patch.object(strategies, "run_command_async", AsyncMock())
        linux_releases.requests.clear()

        await VersionLockedRuntimeStrategy().post_symlink(
            HELIX, "hx", provision_context(), NullReporter()
        )

        run.assert_not_awaited()
        assert linux_releases.requests == []

    async def test_existing_env_runtime_skips_download(
        self, linux_releases, provision_context, mocker
    ):
        ctx = provision_context()
        (ctx.layout.root / "helix" / "runtime").mkdir(parents=True)
        run = mocker.patch.object(strategies, "run_command_async", AsyncMock())

        await VersionLockedRuntimeStrategy().post_symlink(
            HELIX, "hx", ctx, NullReporter()
        )

        run.assert_not_awaited()

    async def test_unknown_version_tag_fails(
        self, linux_releases, provision_context, mocker
    ):
        mocker.patch.object(
            strategies,
            "run_command_async",
            AsyncMock(return_value="helix 23.10 (f6021dd0)"),
        )

        with pytest.raises(NetworkError) as exc_info:
            await VersionLockedRuntimeStrategy().post_symlink(
                HELIX, "hx", provision_context(), NullReporter()
            )

        assert exc_info.value.status_code == 404

    async def test_version_command_failure_propagates(self, provision_context, mocker):
        mocker.patch.object(
            strategies,
            "run_command_async",
            AsyncMock(side_effect=ProcessError("Command failed", command="hx --version")),
        )

        with pytest.raises(ProcessError):
            await VersionLockedRuntimeStrategy().post_symlink(
                HELIX, "hx", provision_context(), NullReporter()
            )

    async def test_simple_tools_have_no_hooks(self, provision_context):
        tool = ToolSpec(name="demo", repo="example/demo", binary_name="demo")
        strategy = SimpleStrategy()
        ctx = provision_context()

        assert await strategy.post_symlink(tool, "demo", ctx, NullReporter()) is None
        assert (
            await strategy.after_install(tool, ctx, Release("1.0"), NullReporter())
            is None
        )

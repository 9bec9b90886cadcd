import io
import stat
import tarfile
import zipfile
from unittest.mock import AsyncMock

import platformdirs
import pytest

_ASYNC_NETWORK_BLOCK_MSG = (
    "Async network access is blocked during tests. Mock aiohttp.ClientSession."
)


async def _async_block_network(*_args, **_kwargs):
    """
    Prevent async network calls during tests by raising a RuntimeError.

    Raises:
        RuntimeError: `_ASYNC_NETWORK_BLOCK_MSG` explaining that async network access is blocked.
    """
    raise RuntimeError(_ASYNC_NETWORK_BLOCK_MSG)


def _block_sync_get(*_args, **_kwargs):
    # aiohttp's ClientSession.get is a plain function returning a context manager
    raise RuntimeError(_ASYNC_NETWORK_BLOCK_MSG)


def pytest_configure(config):
    """
    Register the markers used across the suite.

    Parameters:
        config: pytest.Config
    """
    config.addinivalue_line(
        "markers", "asyncio: mark test as an asyncio test (auto-detected)"
    )
    config.addinivalue_line("markers", "unit: fast tests without I/O beyond tmp_path")
    config.addinivalue_line(
        "markers", "integration: tests exercising several modules together"
    )


@pytest.fixture(autouse=True)
def _isolate_test_environment(tmp_path_factory, monkeypatch):
    """
    Point HOME, the XDG directories and platformdirs at a private temporary tree.

    Also clears the environment variables isoterm reads so the developer's own
    settings never leak into a test.
    """
    base = tmp_path_factory.mktemp("isoterm")
    home = base / "home"
    config_dir = base / "config"
    data_dir = base / "data"
    for path in (home, config_dir, data_dir):
        path.mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_dir))
    monkeypatch.setenv("XDG_DATA_HOME", str(data_dir))
    for name in ("GITHUB_TOKEN", "ISOTERM_CONFIG", "ISOTERM_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)

    monkeypatch.setattr(
        platformdirs, "user_config_dir", lambda *_args, **_kwargs: str(config_dir)
    )
    monkeypatch.setattr(
        platformdirs, "user_data_dir", lambda *_args, **_kwargs: str(data_dir)
    )


def pytest_runtest_setup():
    """Replace aiohttp's HTTP entry points with blockers so no test reaches the network."""
    import aiohttp

    aiohttp.request = _async_block_network
    aiohttp.ClientSession.request = _async_block_network  # type: ignore[assignment]
    aiohttp.ClientSession.get = _block_sync_get  # type: ignore[assignment]


# =============================================================================
# Async Test Fixtures
# =============================================================================


@pytest.fixture
def mock_aiohttp_session(mocker):
    """
    Provide a mock aiohttp.ClientSession for testing async HTTP operations.

    Yields a MagicMock configured with the aiohttp.ClientSession spec and with `closed` set to False.
    """
    import aiohttp

    mock_session = mocker.MagicMock(spec=aiohttp.ClientSession)
    mock_session.closed = False
    yield mock_session


@pytest.fixture
def mock_async_response(mocker):
    """
    Provide a factory that creates configured mock aiohttp.ClientResponse objects for tests.

    Returns:
        factory (callable): Builds a mocked `aiohttp.ClientResponse` with `status`,
        `headers`, an async `json()` and optional `content.iter_chunked` chunks.
    """

    def _create_response(
        status=200,
        headers=None,
        json_data=None,
        content_chunks=None,
        json_side_effect=None,
    ):
        import aiohttp

        response = AsyncMock(spec=aiohttp.ClientResponse)
        response.status = status
        response.headers = headers or {}
        if json_side_effect is not None:
            response.json = AsyncMock(side_effect=json_side_effect)
        else:
            response.json = AsyncMock(return_value=json_data)

        async def _async_iter_chunks(*_args, **_kwargs):
            for chunk in content_chunks or []:
                yield chunk

        mock_content = mocker.MagicMock()
        mock_content.iter_chunked = mocker.Mock(side_effect=_async_iter_chunks)
        response.content = mock_content
        return response

    return _create_response


def make_context_manager(response):
    """Wrap `response` so it works with `async with session.get(...)`."""
    cm = AsyncMock()
    cm.__aenter__.return_value = response
    cm.__aexit__.return_value = False
    return cm


@pytest.fixture
def async_cm():
    return make_context_manager


# =============================================================================
# Archive Fixtures
# =============================================================================


def build_tar(entries, compression="gz"):
    """
    Build an in-memory tar archive.

    Parameters:
        entries: Iterable of (name, data) pairs. `data=None` makes a directory,
            a tuple ("link", target) makes a symlink, bytes make a 0o755 file.
        compression: "gz" or "xz".

    Returns:
        bytes: The archive contents.
    """
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode=f"w:{compression}") as tar:
        for name, data in entries:
            info = tarfile.TarInfo(name)
            if data is None:
                info.type = tarfile.DIRTYPE
                info.mode = 0o755
                tar.addfile(info)
            elif isinstance(data, tuple):
                info.type = tarfile.SYMTYPE
                info.linkname = data[1]
                tar.addfile(info)
            else:
                info.size = len(data)
                info.mode = 0o755
                tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


def build_zip(entries):
    """Build an in-memory zip archive; same entry format as `build_tar` minus links."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, data in entries:
            if data is None:
                info = zipfile.ZipInfo(name.rstrip("/") + "/")
                info.external_attr = (stat.S_IFDIR | 0o755) << 16
                archive.writestr(info, b"")
            else:
                info = zipfile.ZipInfo(name)
                info.external_attr = (stat.S_IFREG | 0o755) << 16
                archive.writestr(info, data)
    return buffer.getvalue()


@pytest.fixture
def archive_builder():
    """Expose the archive helpers to tests."""

    class _Builder:
        tar = staticmethod(build_tar)
        zip = staticmethod(build_zip)

    return _Builder


@pytest.fixture
def executable_on_path(tmp_path):
    """Factory creating fake executables in a private directory usable as a search path."""
    path_dir = tmp_path / "system-bin"
    path_dir.mkdir()

    def _create(name, content="#!/bin/sh\necho fake\n"):
        binary = path_dir / name
        binary.write_text(content)
        binary.chmod(binary.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return binary

    _create.path = str(path_dir)
    return _create


@pytest.fixture
def empty_search_path(tmp_path):
    """A search path that contains no executables."""
    empty = tmp_path / "empty-path"
    empty.mkdir()
    return str(empty)


# =============================================================================
# Fake Release Server
# =============================================================================


class FakeReleaseServer:
    """
    Routes `session.get(url)` calls of a mocked aiohttp session.

    Release documents and asset bodies are registered per repository; every
    other URL answers 404. Requested URLs are recorded in `requests`.
    """

    api_base = "https://api.github.com"

    def __init__(self, session, make_response, make_cm):
        self.session = session
        self._make_response = make_response
        self._make_cm = make_cm
        self._routes = {}
        self.requests = []
        session.get.side_effect = self._get

    def _get(self, url, *_args, **_kwargs):
        self.requests.append(url)
        route = self._routes.get(url)
        if route is None:
            return self._make_cm(self._make_response(status=404))
        status, json_data, body = route
        chunks = [body] if body is not None else None
        return self._make_cm(
            self._make_response(status=status, json_data=json_data, content_chunks=chunks)
        )

    def add_release(self, repo, tag, assets, tarball=None, latest=True):
        """
        Register release `tag` of `repo`.

        Parameters:
            assets: Mapping of asset name to archive bytes.
            tarball: Source tarball bytes, or None for a release without one.
            latest: Also answer the `releases/latest` endpoint.
        """
        download_base = f"https://github.com/{repo}/releases/download/{tag}"
        document = {
            "tag_name": tag,
            "assets": [
                {
                    "name": name,
                    "browser_download_url": f"{download_base}/{name}",
                    "size": len(data),
                }
                for name, data in assets.items()
            ],
        }
        for name, data in assets.items():
            self._routes[f"{download_base}/{name}"] = (200, None, data)
        if tarball is not None:
            tarball_url = f"{self.api_base}/repos/{repo}/tarball/{tag}"
            document["tarball_url"] = tarball_url
            self._routes[tarball_url] = (200, None, tarball)

        self._routes[f"{self.api_base}/repos/{repo}/releases/tags/{tag}"] = (
            200,
            document,
            None,
        )
        if latest:
            self._routes[f"{self.api_base}/repos/{repo}/releases/latest"] = (
                200,
                document,
                None,
            )
        return document

    def fail(self, url, status):
        self._routes[url] = (status, None, None)

    def client(self):
        """A client bound to the fake session that never waits between retries."""
        from isoterm.download.async_client import AsyncGitHubClient

        client = AsyncGitHubClient(
            api_base=self.api_base, max_retries=1, retry_delay=0, max_retry_delay=0
        )
        client._session = self.session
        return client


@pytest.fixture
def release_server(mock_aiohttp_session, mock_async_response):
    return FakeReleaseServer(
        mock_aiohttp_session, mock_async_response, make_context_manager
    )


LINUX_TAGS = {
    "fish": "4.0.2",
    "starship": "v1.22.1",
    "zoxide": "v0.9.7",
    "atuin": "v18.4.0",
    "ripgrep": "14.1.0",
    "helix": "25.01",
}


def register_linux_releases(server, fish_share=True):
    """
    Register a realistic x86_64 Linux release of every declared tool.

    With `fish_share=False` the fish archive holds only the binary, so the
    `share` tree has to come from the source tarball.
    """
    fish_entries = [("fish-4.0.2/bin/fish", b"fish-binary")]
    if fish_share:
        fish_entries.append(("fish-4.0.2/share/config.fish", b"# fish config"))
    server.add_release(
        "fish-shell/fish-shell",
        "4.0.2",
        {
            "fish-4.0.2-linux-aarch64.tar.xz": build_tar([("fish", b"arm")], "xz"),
            "fish-4.0.2-linux-x86_64.tar.xz": build_tar(fish_entries, "xz"),
            "fish-4.0.2.tar.xz": build_tar([("fish-4.0.2/README", b"src")], "xz"),
        },
        tarball=build_tar(
            [
                ("fish-shell-fish-shell-4a5b6c/src/main.rs", b"rust"),
                ("fish-shell-fish-shell-4a5b6c/share/config.fish", b"# from source"),
                ("fish-shell-fish-shell-4a5b6c/share/functions/ls.fish", b"function ls"),
            ]
        ),
    )
    server.add_release(
        "starship/starship",
        "v1.22.1",
        {
            "starship-x86_64-unknown-linux-musl.tar.gz": build_tar(
                [("starship", b"starship-musl")]
            ),
            "starship-x86_64-unknown-linux-gnu.tar.gz": build_tar(
                [("starship", b"starship-gnu")]
            ),
            "starship-x86_64-unknown-linux-gnu.tar.gz.sha256": b"deadbeef",
        },
    )
    server.add_release(
        "ajeetdsouza/zoxide",
        "v0.9.7",
        {
            "zoxide-0.9.7-aarch64-unknown-linux-musl.tar.gz": build_tar(
                [("zoxide", b"arm")]
            ),
            "zoxide-0.9.7-x86_64-unknown-linux-musl.tar.gz": build_tar(
                [("zoxide", b"zoxide-musl"), ("man/man1/zoxide.1", b"man")]
            ),
        },
    )
    server.add_release(
        "atuinsh/atuin",
        "v18.4.0",
        {
            "atuin-x86_64-unknown-linux-gnu.tar.gz": build_tar(
                [
                    ("atuin-x86_64-unknown-linux-gnu/", None),
                    ("atuin-x86_64-unknown-linux-gnu/atuin", b"atuin-gnu"),
                ]
            ),
        },
    )
    server.add_release(
        "BurntSushi/ripgrep",
        "14.1.0",
        {
            "ripgrep-14.1.0-x86_64-unknown-linux-musl.tar.gz": build_tar(
                [
                    ("ripgrep-14.1.0-x86_64-unknown-linux-musl/doc/rg.1", b"man"),
                    ("ripgrep-14.1.0-x86_64-unknown-linux-musl/rg", b"rg-musl"),
                ]
            ),
        },
    )
    server.add_release(
        "helix-editor/helix",
        "25.01",
        {
            "helix-25.01-x86_64-linux.tar.xz": build_tar(
                [
                    ("helix-25.01-x86_64-linux/", None),
                    ("helix-25.01-x86_64-linux/hx", b"hx-binary"),
                    ("helix-25.01-x86_64-linux/runtime/themes/onedark.toml", b"theme"),
                ],
                "xz",
            ),
            "helix-25.01-x86_64.AppImage": b"appimage",
        },
    )
    return server


@pytest.fixture
def linux_releases(release_server):
    return register_linux_releases(release_server)


@pytest.fixture
def linux_platform():
    from isoterm.download.resolver import PlatformInfo

    return PlatformInfo(os_name="linux", arch="x86_64", glibc_version="2.39")


@pytest.fixture
def provision_context(tmp_path, release_server, linux_platform, empty_search_path):
    """
    Factory for a ProvisionContext over a fresh environment skeleton.

    Keyword arguments override the context fields; the client talks to
    `release_server` and system binaries are searched in an empty directory.
    """
    from isoterm.download.async_downloader import AsyncDownloader
    from isoterm.provision.context import ProvisionContext
    from isoterm.provision.orchestrator import create_skeleton

    def _create(**overrides):
        client = overrides.pop("client", None) or release_server.client()
        fields = {
            "layout": create_skeleton(tmp_path / "env"),
            "client": client,
            "downloader": AsyncDownloader(client),
            "platform": linux_platform,
            "search_path": empty_search_path,
        }
        fields.update(overrides)
        return ProvisionContext(**fields)

    return _create


@pytest.fixture
def register_releases():
    """Expose `register_linux_releases` for tests that need a variant of the catalog."""
    return register_linux_releases

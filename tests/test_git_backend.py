"""Tests for the subprocess git backend against real repositories."""

from __future__ import annotations

import shutil
import subprocess
import sys
import zipfile
from pathlib import Path

import pytest

from git_registry.domain.errors import CommandFailed, CommandTimedOut, OutputDecodeError, ProcessLaunchFailed
from git_registry.domain.models import PackageConfig, RegistryConfig, ScopeConfig
from git_registry.services.registry import Registry
from git_registry.storage.git_backend import CommandRunner, GitCommandBackend

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git executable not available")


def git(cwd: Path, *args: str) -> None:
    subprocess.run(
        ["git", "-c", "user.name=Registry Tests", "-c", "user.email=tests@example.com", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
    )


@pytest.fixture
def origin(tmp_path: Path) -> Path:
    """A repository with a root package, a nested package and a few tags."""
    repo = tmp_path / "origin"
    repo.mkdir()
    git(repo, "init", "--quiet")

    (repo / "Package.swift").write_text("// swift-tools-version:5.3\n")
    (repo / "Sources" / "Lib").mkdir(parents=True)
    (repo / "Sources" / "Lib" / "Package.swift").write_text("// nested 1.0\n")
    git(repo, "add", "-A")
    git(repo, "commit", "--quiet", "-m", "first")
    git(repo, "tag", "v1.0.0")

    (repo / "Package.swift").write_text("// swift-tools-version:5.5\n")
    (repo / "Package@swift-5.3.swift").write_text("// swift-tools-version:5.3\n")
    git(repo, "add", "-A")
    git(repo, "commit", "--quiet", "-m", "second")
    git(repo, "tag", "release-1.1.0")
    git(repo, "tag", "ci-green")
    return repo


class TestCommandRunner:
    def test_launch_failure(self, tmp_path: Path) -> None:
        result = CommandRunner().run(["definitely-not-an-executable-3f9a"], cwd=tmp_path)
        assert isinstance(result.error, ProcessLaunchFailed)

    def test_timeout(self, tmp_path: Path) -> None:
        result = CommandRunner(timeout=0.2).run([sys.executable, "-c", "import time; time.sleep(5)"], cwd=tmp_path)
        assert isinstance(result.error, CommandTimedOut)

    def test_non_zero_exit(self, tmp_path: Path) -> None:
        script = "import sys; sys.stderr.write('nope'); sys.exit(3)"
        result = CommandRunner().run([sys.executable, "-c", script], cwd=tmp_path)
        assert result.error.returncode == 3
        assert result.error.stderr == "nope"

    def test_invalid_utf8_output(self, tmp_path: Path) -> None:
        script = "import sys; sys.stdout.buffer.write(b'\\xff\\xfe')"
        result = CommandRunner().run([sys.executable, "-c", script], cwd=tmp_path)
        assert isinstance(result.error, OutputDecodeError)

    def test_output(self, tmp_path: Path) -> None:
        result = CommandRunner().run([sys.executable, "-c", "print('v1.0.0')"], cwd=tmp_path)
        assert result.unwrap().strip() == "v1.0.0"


@requires_git
class TestGitCommandBackend:
    def test_clone_and_list_tags(self, origin: Path, tmp_path: Path) -> None:
        backend = GitCommandBackend()
        local = tmp_path / "checkouts" / "mona.LinkedList"

        assert backend.clone(str(origin), local).is_ok()

        assert sorted(backend.list_tags(local).unwrap()) == ["ci-green", "release-1.1.0", "v1.0.0"]

    def test_fetch_picks_up_new_tags(self, origin: Path, tmp_path: Path) -> None:
        backend = GitCommandBackend()
        local = tmp_path / "local"
        assert backend.clone(str(origin), local).is_ok()

        git(origin, "tag", "v2.0.0")
        assert backend.fetch_tags(local).is_ok()

        assert "v2.0.0" in backend.list_tags(local).unwrap()

    def test_checkout_unknown_tag(self, origin: Path, tmp_path: Path) -> None:
        backend = GitCommandBackend()
        local = tmp_path / "local"
        assert backend.clone(str(origin), local).is_ok()

        assert isinstance(backend.checkout(local, "v9.9.9").error, CommandFailed)

    def test_archive_with_prefix(self, origin: Path, tmp_path: Path) -> None:
        backend = GitCommandBackend()
        local = tmp_path / "local"
        output = tmp_path / "out.zip"
        assert backend.clone(str(origin), local).is_ok()
        assert backend.checkout(local, "v1.0.0").is_ok()

        assert backend.archive(local, "", output, prefix="LinkedList").is_ok()

        names = zipfile.ZipFile(output).namelist()
        assert "LinkedList/Package.swift" in names
        assert "LinkedList/Package@swift-5.3.swift" not in names

    def test_archive_of_subdirectory(self, origin: Path, tmp_path: Path) -> None:
        backend = GitCommandBackend()
        local = tmp_path / "local"
        output = tmp_path / "lib.zip"
        assert backend.clone(str(origin), local).is_ok()
        assert backend.checkout(local, "release-1.1.0").is_ok()

        assert backend.archive(local, "/Sources/Lib/", output, prefix="Lib").is_ok()

        files = [n for n in zipfile.ZipFile(output).namelist() if not n.endswith("/")]
        assert files == ["Lib/Package.swift"]

    def test_operations_on_missing_checkout(self, tmp_path: Path) -> None:
        backend = GitCommandBackend()
        (tmp_path / "empty").mkdir()
        result = backend.list_tags(tmp_path / "empty" / "missing")
        assert not result.is_ok()


@requires_git
class TestRegistryOverGit:
    """The registry end to end against a local git remote."""

    def test_releases_archives_and_manifests(self, origin: Path, tmp_path: Path) -> None:
        config = RegistryConfig(
            scopes={"mona": ScopeConfig(packages={"LinkedList": PackageConfig(repository=str(origin))})}
        )
        registry = Registry(root=tmp_path / "data", config=config)
        package = registry.resolve_package("mona", "LinkedList")

        assert list(registry.list_releases("mona", "LinkedList").unwrap()) == ["1.0.0", "1.1.0"]

        archive = registry.get_source_archive(package, "1.1.0").unwrap()
        assert "LinkedList/Package@swift-5.3.swift" in zipfile.ZipFile(archive.path).namelist()

        manifest = registry.get_release_manifest_contents(package, "1.0.0").unwrap()
        assert manifest == b"// swift-tools-version:5.3\n"
        variants = registry.list_manifest_variants(package, "1.1.0").unwrap()
        assert variants == [("Package@swift-5.3.swift", "5.3")]

    def test_relative_data_directory(self, origin: Path, tmp_path: Path, monkeypatch) -> None:
        """A data directory given relative to the working directory still works."""
        monkeypatch.chdir(tmp_path)
        config = RegistryConfig(
            scopes={"mona": ScopeConfig(packages={"Lib": PackageConfig(repository=str(origin))})}
        )
        registry = Registry(root=Path("data"), config=config)

        assert list(registry.list_releases("mona", "Lib").unwrap()) == ["1.0.0", "1.1.0"]
        archive = registry.get_source_archive(registry.resolve_package("mona", "Lib"), "1.0.0").unwrap()

        assert archive.path == tmp_path.resolve() / "data" / "archives" / "mona.Lib-1.0.0.zip"
        assert "Lib/Package.swift" in zipfile.ZipFile(archive.path).namelist()
        assert (tmp_path / "data" / "repositories" / "mona.Lib" / ".git").is_dir()
        assert not (tmp_path / "data" / "repositories" / "data").exists()

    def test_relative_paths_in_backend(self, origin: Path, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.chdir(tmp_path)
        backend = GitCommandBackend()
        local = Path("checkouts") / "mona.LinkedList"

        assert backend.clone(str(origin), local).is_ok()
        assert backend.checkout(local, "v1.0.0").is_ok()
        assert backend.archive(local, "", Path("out.zip"), prefix="LinkedList").is_ok()

        assert (tmp_path / "checkouts" / "mona.LinkedList" / ".git").is_dir()
        assert "LinkedList/Package.swift" in zipfile.ZipFile(tmp_path / "out.zip").namelist()

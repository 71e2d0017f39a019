"""Tests for installing sysroots into the cache."""

from __future__ import annotations

import errno
import gc
import logging
import tarfile
from dataclasses import replace
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING
from unittest.mock import MagicMock, patch

import pytest

from rust_sysroot.errors import AcquisitionError, SysrootError
from rust_sysroot.sysroot import (
	FALLBACK_CARGO_CUTOFF,
	FALLBACK_CARGO_SHA,
	ModuleVariant,
	Sysroot,
	SysrootManager,
	cargo_sha_for,
)
from rust_sysroot.sysroot.manager import remove_sysroot

if TYPE_CHECKING:
	from collections.abc import Callable

	from rust_sysroot.git.models import Commit


def snapshot(root: Path) -> dict[str, bytes]:
	"""Relative path to content for every file below ``root``."""
	return {path.relative_to(root).as_posix(): path.read_bytes() for path in sorted(root.rglob("*")) if path.is_file()}


def offline_session() -> MagicMock:
	"""A session that fails the test if it is used."""
	session = MagicMock()
	session.get.side_effect = AssertionError("unexpected network access")
	return session


def serve(
	manager: SysrootManager,
	bodies: dict[str, bytes],
	sha: str,
	triple: str,
	mirror: int = 0,
	modules: tuple[ModuleVariant, ...] = tuple(ModuleVariant),
	cargo_sha: str | None = None,
) -> dict[str, bytes]:
	"""Map the mirror url of each module to its archive body."""
	served = {}
	for module in modules:
		module_sha = cargo_sha or sha if module is ModuleVariant.CARGO else sha
		served[manager.transport.urls(module_sha, triple, module)[mirror]] = bodies[str(module)]
	return served


@pytest.fixture
def cache_root(tmp_path: Path) -> Path:
	"""Cache root for one test."""
	return tmp_path / "cache"


@pytest.mark.unit
class TestCargoFallback:
	"""Test cases for cargo_sha_for."""

	def test_before_cutoff(self, commits: list[Commit]) -> None:
		"""Commits older than the cutoff get the known-good cargo."""
		old = replace(commits[0], date=FALLBACK_CARGO_CUTOFF - timedelta(seconds=1))
		assert cargo_sha_for(old) == (FALLBACK_CARGO_SHA, True)

	def test_at_and_after_cutoff(self, commits: list[Commit]) -> None:
		"""Commits from the cutoff on use their own cargo."""
		at_cutoff = replace(commits[0], date=FALLBACK_CARGO_CUTOFF)
		assert cargo_sha_for(at_cutoff) == (at_cutoff.sha, False)
		assert cargo_sha_for(commits[0]) == (commits[0].sha, False)


@pytest.mark.fs
class TestInstall:
	"""Test cases for SysrootManager.install."""

	def test_installs_complete_sysroot(
		self, cache_root: Path, commits: list[Commit], triple: str, archives: Callable, fake_session: Callable
	) -> None:
		"""All three modules are unpacked and shared libraries are linked."""
		commit = commits[0]
		manager = SysrootManager(cache_root, session=fake_session())
		manager.transport.session.responses = serve(manager, archives(), commit.sha, triple)

		sysroot = manager.install(commit, triple, preserve=True)

		unpack_into = cache_root / commit.sha
		assert sysroot.directory == unpack_into
		assert sysroot.rustc == (unpack_into / "rustc/bin/rustc").resolve()
		assert sysroot.rustdoc == (unpack_into / "rustc/bin/rustdoc").resolve()
		assert sysroot.cargo == (unpack_into / "cargo/bin/cargo").resolve()
		assert sysroot.rustc.is_absolute()
		assert sysroot.used_fallback_cargo is False

		lib_dir = unpack_into / "rustc/lib/rustlib" / triple / "lib"
		assert (lib_dir / "libcore-abc123.rlib").exists()
		assert (lib_dir / "libstd-abc123.so").samefile(unpack_into / "rustc/lib/libstd-abc123.so")
		assert not (unpack_into / "install.sh").exists()

	def test_preserve_saves_archives(
		self, cache_root: Path, commits: list[Commit], triple: str, archives: Callable, fake_session: Callable
	) -> None:
		"""Preserved installs keep the downloaded archives by default."""
		commit = commits[0]
		bodies = archives()
		manager = SysrootManager(cache_root, session=fake_session())
		manager.transport.session.responses = serve(manager, bodies, commit.sha, triple)

		manager.install(commit, triple, preserve=True)

		for module in ModuleVariant:
			saved = manager.transport.archive_path(commit.sha, triple, module, "xz")
			assert saved.read_bytes() == bodies[str(module)]

	def test_unpreserved_install_is_removed(
		self, cache_root: Path, commits: list[Commit], triple: str, archives: Callable, fake_session: Callable
	) -> None:
		"""Without preserve nothing is left behind once the handle is closed."""
		commit = commits[0]
		manager = SysrootManager(cache_root, session=fake_session())
		manager.transport.session.responses = serve(manager, archives(), commit.sha, triple)

		sysroot = manager.install(commit, triple)
		assert sysroot.rustc.exists()
		assert list(cache_root.glob("*.tar.*")) == []

		sysroot.close()
		assert not sysroot.directory.exists()

	def test_reuses_preserved_sysroot_offline(
		self, cache_root: Path, commits: list[Commit], triple: str, archives: Callable, fake_session: Callable
	) -> None:
		"""A preserved sysroot is reused without network access."""
		commit = commits[0]
		manager = SysrootManager(cache_root, session=fake_session())
		manager.transport.session.responses = serve(manager, archives(), commit.sha, triple)
		first = manager.install(commit, triple, preserve=True)
		tree = snapshot(first.directory)

		offline = SysrootManager(cache_root, session=offline_session())
		second = offline.install(commit, triple, preserve=True)

		assert second.rustc == first.rustc
		assert snapshot(second.directory) == tree
		offline.transport.session.get.assert_not_called()

	def test_saved_archives_rebuild_identical_tree(
		self, cache_root: Path, commits: list[Commit], triple: str, archives: Callable, fake_session: Callable
	) -> None:
		"""Installing from saved archives gives the same tree as downloading."""
		commit = commits[0]
		manager = SysrootManager(cache_root, session=fake_session())
		manager.transport.session.responses = serve(manager, archives(), commit.sha, triple)
		with manager.install(commit, triple, save_archives=True) as sysroot:
			downloaded = snapshot(sysroot.directory)
		assert not (cache_root / commit.sha).exists()

		offline = SysrootManager(cache_root, session=offline_session())
		with offline.install(commit, triple, save_archives=True) as sysroot:
			assert snapshot(sysroot.directory) == downloaded
		offline.transport.session.get.assert_not_called()

	def test_corrupt_cached_archive_is_replaced(
		self,
		cache_root: Path,
		commits: list[Commit],
		triple: str,
		archives: Callable,
		fake_session: Callable,
		caplog: pytest.LogCaptureFixture,
	) -> None:
		"""A cached archive that fails to extract is deleted and downloaded again."""
		commit = commits[0]
		bodies = archives()
		manager = SysrootManager(cache_root, session=fake_session())
		manager.transport.session.responses = serve(manager, bodies, commit.sha, triple)
		cached = manager.transport.archive_path(commit.sha, triple, ModuleVariant.RUSTC, "xz")
		cache_root.mkdir(parents=True)
		cached.write_bytes(b"garbage")

		with caplog.at_level(logging.WARNING, logger="rust_sysroot.sysroot.manager"):
			sysroot = manager.install(commit, triple, preserve=True)

		assert sysroot.rustc.exists()
		assert cached.read_bytes() == bodies["rustc"]
		assert any(str(cached) in record.getMessage() for record in caplog.records)

	def test_disk_failure_keeps_cached_archive(
		self, cache_root: Path, commits: list[Commit], triple: str, archives: Callable
	) -> None:
		"""A failing write aborts the install without discarding the cache or trying mirrors."""
		commit = commits[0]
		bodies = archives()
		manager = SysrootManager(cache_root, session=offline_session())
		cache_root.mkdir(parents=True)
		cached = manager.transport.archive_path(commit.sha, triple, ModuleVariant.RUSTC, "xz")
		cached.write_bytes(bodies["rustc"])

		no_space = OSError(errno.ENOSPC, "No space left on device")
		with patch.object(tarfile.TarFile, "makefile", side_effect=no_space):
			with pytest.raises(SysrootError, match="No space left on device") as exc_info:
				manager.install(commit, triple, preserve=True)

		assert not isinstance(exc_info.value, AcquisitionError)
		assert cached.read_bytes() == bodies["rustc"]
		manager.transport.session.get.assert_not_called()
		assert not (cache_root / commit.sha).exists()

	def test_falls_through_to_next_mirror(
		self, cache_root: Path, commits: list[Commit], triple: str, archives: Callable, fake_session: Callable
	) -> None:
		"""Missing archives are skipped in mirror order."""
		commit = commits[0]
		manager = SysrootManager(cache_root, session=fake_session())
		session = manager.transport.session
		session.responses = serve(manager, archives(), commit.sha, triple, modules=(ModuleVariant.STD, ModuleVariant.CARGO))
		session.responses.update(serve(manager, archives("gz"), commit.sha, triple, mirror=1, modules=(ModuleVariant.RUSTC,)))

		with manager.install(commit, triple) as sysroot:
			assert sysroot.rustc.exists()

		rustc_urls = manager.transport.urls(commit.sha, triple, ModuleVariant.RUSTC)
		assert session.requested[:2] == rustc_urls[:2]

	def test_corrupt_download_tries_next_mirror(
		self, cache_root: Path, commits: list[Commit], triple: str, archives: Callable, fake_session: Callable
	) -> None:
		"""A download that fails to extract moves on to the next mirror."""
		commit = commits[0]
		manager = SysrootManager(cache_root, session=fake_session())
		session = manager.transport.session
		truncated = archives()["cargo"][:100]
		session.responses = serve(manager, archives(), commit.sha, triple, modules=(ModuleVariant.RUSTC, ModuleVariant.STD))
		session.responses[manager.transport.urls(commit.sha, triple, ModuleVariant.CARGO)[0]] = truncated
		session.responses.update(serve(manager, archives("gz"), commit.sha, triple, mirror=1, modules=(ModuleVariant.CARGO,)))

		with manager.install(commit, triple, save_archives=True) as sysroot:
			assert sysroot.cargo.exists()

		assert not manager.transport.archive_path(commit.sha, triple, ModuleVariant.CARGO, "xz").exists()
		assert manager.transport.archive_path(commit.sha, triple, ModuleVariant.CARGO, "gz").exists()

	def test_exhausted_sources_clean_up(
		self, cache_root: Path, commits: list[Commit], triple: str, archives: Callable, fake_session: Callable
	) -> None:
		"""A module missing everywhere fails with a descriptive error and no partial tree."""
		commit = commits[0]
		manager = SysrootManager(cache_root, session=fake_session())
		manager.transport.session.responses = serve(manager, archives(), commit.sha, triple, modules=(ModuleVariant.RUSTC,))

		with pytest.raises(AcquisitionError) as exc_info:
			manager.install(commit, triple, preserve=True)

		message = str(exc_info.value)
		assert f"unable to download sha {commit.sha} triple {triple} module rust-std" in message
		assert "HTTP 404" in message
		assert not (cache_root / commit.sha).exists()

	def test_old_commit_uses_fallback_cargo(
		self, cache_root: Path, commits: list[Commit], triple: str, archives: Callable, fake_session: Callable
	) -> None:
		"""Commits before the cutoff install the known-good cargo."""
		old = replace(commits[0], date=FALLBACK_CARGO_CUTOFF - timedelta(days=30))
		manager = SysrootManager(cache_root, session=fake_session())
		manager.transport.session.responses = serve(manager, archives(), old.sha, triple, cargo_sha=FALLBACK_CARGO_SHA)

		with manager.install(old, triple) as sysroot:
			assert sysroot.used_fallback_cargo is True
			assert sysroot.cargo.exists()

		cargo_urls = [url for url in manager.transport.session.requested if "/cargo-" in url]
		assert cargo_urls
		assert all(FALLBACK_CARGO_SHA in url for url in cargo_urls)

	def test_install_with_local_rustc(
		self,
		tmp_path: Path,
		cache_root: Path,
		commits: list[Commit],
		triple: str,
		archives: Callable,
		fake_session: Callable,
	) -> None:
		"""Only cargo is downloaded when pairing with a local rustc."""
		commit = commits[0]
		local_bin = tmp_path / "stage1" / "bin"
		local_bin.mkdir(parents=True)
		(local_bin / "rustc").write_bytes(b"")
		manager = SysrootManager(cache_root, session=fake_session())
		manager.transport.session.responses = serve(manager, archives(), commit.sha, triple)

		sysroot = manager.install_with_local_rustc(commit, local_bin / "rustc", triple, preserve=True)

		assert sysroot.rustc == (local_bin / "rustc").resolve()
		assert sysroot.rustdoc == local_bin.resolve() / "rustdoc"
		assert sysroot.cargo.exists()
		assert all("/cargo-" in url for url in manager.transport.session.requested)

	def test_from_config(self, tmp_path: Path) -> None:
		"""The manager honours the sysroot configuration section."""
		config_loader = MagicMock()
		config_loader.get_sysroot_config.return_value = {
			"cache_dir": str(tmp_path / "c"),
			"mirrors": ["https://mirror.test/@SHA@/@MODULE@-@TRIPLE@.tar.xz"],
			"timeout": 12,
		}

		manager = SysrootManager.from_config(config_loader)

		assert manager.cache_root == tmp_path / "c"
		assert manager.transport.mirrors == ("https://mirror.test/@SHA@/@MODULE@-@TRIPLE@.tar.xz",)
		assert manager.transport.timeout == 12  # noqa: PLR2004


@pytest.mark.fs
class TestSysrootLifecycle:
	"""Test cases for the Sysroot handle."""

	@staticmethod
	def make_sysroot(cache_root: Path, preserve: bool = False) -> Sysroot:
		directory = cache_root / ("b" * 40)
		(directory / "rustc/bin").mkdir(parents=True)
		return Sysroot(
			sha="b" * 40,
			rustc=directory / "rustc/bin/rustc",
			rustdoc=directory / "rustc/bin/rustdoc",
			cargo=directory / "cargo/bin/cargo",
			triple="x86_64-unknown-linux-gnu",
			cache_root=cache_root,
			preserve=preserve,
		)

	def test_close_removes_directory(self, cache_root: Path) -> None:
		"""close() deletes the tree; closing twice is harmless."""
		sysroot = self.make_sysroot(cache_root)
		sysroot.close()
		sysroot.close()
		assert not sysroot.directory.exists()

	def test_with_block_removes_directory(self, cache_root: Path) -> None:
		"""Leaving a with block deletes the tree."""
		with self.make_sysroot(cache_root) as sysroot:
			assert sysroot.directory.exists()
		assert not sysroot.directory.exists()

	def test_garbage_collection_removes_directory(self, cache_root: Path) -> None:
		"""Dropping the last reference deletes the tree."""
		directory = self.make_sysroot(cache_root).directory
		gc.collect()
		assert not directory.exists()

	def test_preserved_directory_survives(self, cache_root: Path) -> None:
		"""Preserved sysroots are never removed by the handle."""
		with self.make_sysroot(cache_root, preserve=True) as sysroot:
			pass
		assert sysroot.directory.exists()

	def test_keep_transfers_ownership(self, cache_root: Path) -> None:
		"""keep() returns the directory and disables cleanup."""
		sysroot = self.make_sysroot(cache_root)
		directory = sysroot.keep()
		sysroot.close()
		assert directory.exists()
		assert sysroot.preserve is True

	def test_removal_failure_is_logged(self, cache_root: Path, caplog: pytest.LogCaptureFixture) -> None:
		"""Failing to delete a sysroot is reported without raising."""
		with (
			patch("rust_sysroot.sysroot.manager.shutil.rmtree", side_effect=PermissionError("denied")),
			caplog.at_level(logging.WARNING, logger="rust_sysroot.sysroot.manager"),
		):
			remove_sysroot(cache_root / "x")

		assert "please do so manually" in caplog.text

	def test_repr(self, cache_root: Path) -> None:
		"""The debug form names the commit."""
		assert "b" * 40 in repr(self.make_sysroot(cache_root, preserve=True))

"""Download, unpack and manage sysroots in the on-disk cache."""

from __future__ import annotations

import logging
import shutil
import weakref
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Self

import requests
from urllib3.exceptions import HTTPError as Urllib3HTTPError

from rust_sysroot.errors import AcquisitionError, ArchiveError, SysrootError, TransportError
from rust_sysroot.sysroot.constants import (
	CARGO_BIN,
	FALLBACK_CARGO_CUTOFF,
	FALLBACK_CARGO_SHA,
	INSTALL_ORDER,
	RUSTC_BIN,
	RUSTDOC_BIN,
	ModuleVariant,
)
from rust_sysroot.sysroot.extract import ArchiveExtractor, decompress, link_shared_libraries
from rust_sysroot.sysroot.transport import ArchiveTransport, extension_of

if TYPE_CHECKING:
	from collections.abc import Sequence
	from pathlib import PurePosixPath
	from types import TracebackType

	from rust_sysroot.git.models import Commit
	from rust_sysroot.utils.config_loader import ConfigLoader

logger = logging.getLogger(__name__)

# Reading straight from a response can fail in urllib3 or in the archive decoder
STREAM_ERRORS = (ArchiveError, TransportError, requests.RequestException, Urllib3HTTPError)


def cargo_sha_for(commit: Commit) -> tuple[str, bool]:
	"""
	Pick the commit to download cargo from.

	Returns:
	    The cargo sha and whether the known-good fallback was substituted.

	"""
	if commit.date < FALLBACK_CARGO_CUTOFF:
		# Versions of rustc older than the cutoff have bugs in their cargo
		return FALLBACK_CARGO_SHA, True
	return commit.sha, False


def remove_sysroot(directory: Path) -> None:
	"""Delete a sysroot directory, logging instead of raising on failure."""
	try:
		shutil.rmtree(directory)
	except FileNotFoundError:
		pass
	except OSError as e:
		logger.warning("failed to remove %s, please do so manually: %s", directory, e)
	else:
		logger.debug("removed %s", directory)


class Sysroot:
	"""
	A ready-to-use toolchain for one commit.

	The sysroot owns ``cache_root/<sha>``. Unless ``preserve`` is set the
	directory is removed by ``close()``, when leaving a ``with`` block, or
	when the handle is garbage collected.

	"""

	def __init__(
		self,
		sha: str,
		rustc: Path,
		rustdoc: Path,
		cargo: Path,
		triple: str,
		cache_root: Path,
		preserve: bool = False,
		used_fallback_cargo: bool = False,
	) -> None:
		"""Take ownership of ``cache_root/<sha>``."""
		self.sha = sha
		self.rustc = rustc
		self.rustdoc = rustdoc
		self.cargo = cargo
		self.triple = triple
		self.cache_root = cache_root
		self.preserve = preserve
		self.used_fallback_cargo = used_fallback_cargo
		self._finalizer = weakref.finalize(self, remove_sysroot, self.directory)
		if preserve:
			self._finalizer.detach()

	@property
	def directory(self) -> Path:
		"""The directory this sysroot was unpacked into."""
		return self.cache_root / self.sha

	def keep(self) -> Path:
		"""Transfer ownership of the directory to the caller and return it."""
		self._finalizer.detach()
		self.preserve = True
		return self.directory

	def close(self) -> None:
		"""Remove the directory now unless it is preserved."""
		self._finalizer()

	def __enter__(self) -> Self:
		"""Use the sysroot for the duration of a ``with`` block."""
		return self

	def __exit__(
		self,
		exc_type: type[BaseException] | None,
		exc_val: BaseException | None,
		exc_tb: TracebackType | None,
	) -> None:
		"""Clean up when leaving the ``with`` block."""
		self.close()

	def __repr__(self) -> str:
		"""Return a debug representation."""
		return f"Sysroot(sha={self.sha!r}, triple={self.triple!r}, preserve={self.preserve})"


@dataclass
class SysrootDownload:
	"""Parameters of one sysroot installation."""

	directory: Path
	save_download: bool
	rust_sha: str
	cargo_sha: str
	triple: str

	@property
	def unpack_into(self) -> Path:
		"""Directory the modules are extracted into."""
		return self.directory / self.rust_sha

	def module_sha(self, module: ModuleVariant) -> str:
		"""Commit the given module is downloaded from."""
		if module is ModuleVariant.CARGO:
			return self.cargo_sha
		return self.rust_sha


class SysrootManager:
	"""Installs sysroots into a cache root shared across bisection steps."""

	def __init__(
		self,
		cache_root: Path | str = "cache",
		mirrors: Sequence[str] | None = None,
		session: requests.Session | None = None,
		timeout: float = 300,
	) -> None:
		"""
		Initialize the manager.

		Args:
		    cache_root: Directory for archives and extracted sysroots.
		    mirrors: Mirror url templates, defaults to the built-in list.
		    session: Session used for downloads.
		    timeout: Per-request timeout in seconds.

		"""
		self.cache_root = Path(cache_root)
		self.transport = ArchiveTransport(self.cache_root, mirrors=mirrors, session=session, timeout=timeout)

	@classmethod
	def from_config(cls, config_loader: ConfigLoader) -> SysrootManager:
		"""Create a manager from the ``sysroot`` configuration section."""
		config = config_loader.get_sysroot_config()
		return cls(
			cache_root=Path(config.get("cache_dir") or "cache").expanduser(),
			mirrors=config.get("mirrors"),
			timeout=config.get("timeout", 300),
		)

	def _prepare(self, commit: Commit, triple: str, save_download: bool) -> tuple[SysrootDownload, bool]:
		cargo_sha, used_fallback_cargo = cargo_sha_for(commit)
		if used_fallback_cargo:
			logger.info("%s predates the cargo cutoff, using cargo from %s", commit.short_sha, cargo_sha)
		try:
			self.cache_root.mkdir(parents=True, exist_ok=True)
		except OSError as e:
			msg = f"could not create cache directory {self.cache_root}: {e}"
			raise SysrootError(msg) from e
		download = SysrootDownload(
			directory=self.cache_root,
			save_download=save_download,
			rust_sha=commit.sha,
			cargo_sha=cargo_sha,
			triple=triple,
		)
		return download, used_fallback_cargo

	def get_module(self, download: SysrootDownload, module: ModuleVariant) -> list[PurePosixPath]:
		"""
		Obtain and unpack one module, trying the cache then every mirror.

		Returns:
		    Shared libraries left to link (only non-empty for rust-std).

		Raises:
		    AcquisitionError: If every source failed.

		"""
		sha = download.module_sha(module)
		triple = download.triple
		extractor = ArchiveExtractor(download.unpack_into, triple)
		failures: list[str] = []

		for archive_path, extension in self.transport.cached_archives(sha, triple, module):
			try:
				with archive_path.open("rb") as f:
					return extractor.extract(module, decompress(f, extension))
			except ArchiveError as e:
				logger.warning("extracting %s failed: %s", archive_path, e)
				failures.append(f"{archive_path}: {e}")
				archive_path.unlink(missing_ok=True)

		for url in self.transport.urls(sha, triple, module):
			try:
				response = self.transport.fetch(url)
			except TransportError as e:
				failures.append(str(e))
				continue

			archive_path = self.transport.archive_path(sha, triple, module, extension_of(url))
			with response:
				try:
					if download.save_download and not archive_path.exists():
						self.transport.save(response, archive_path)
						with archive_path.open("rb") as f:
							return extractor.extract(module, decompress(f, extension_of(url)))
					return extractor.extract(module, decompress(response.raw, extension_of(url)))
				except STREAM_ERRORS as e:
					logger.warning("extracting %s failed: %s", url, e)
					failures.append(f"{url}: {e}")
					if download.save_download:
						archive_path.unlink(missing_ok=True)

		msg = f"unable to download sha {sha} triple {triple} module {module}"
		if failures:
			msg += "; tried:\n  " + "\n  ".join(failures)
		raise AcquisitionError(msg)

	@staticmethod
	def _is_installed(unpack_into: Path) -> bool:
		return all((unpack_into / binary).exists() for binary in (RUSTC_BIN, RUSTDOC_BIN, CARGO_BIN))

	@staticmethod
	def _canonicalize(path: Path, sha: str) -> Path:
		try:
			return path.resolve(strict=True)
		except OSError as e:
			msg = f"failed to canonicalize {path.name} path for {sha}"
			raise SysrootError(msg) from e

	def install(
		self,
		commit: Commit,
		triple: str,
		preserve: bool = False,
		save_archives: bool | None = None,
	) -> Sysroot:
		"""
		Install rustc, rust-std and cargo for a commit.

		Args:
		    commit: The commit to install.
		    triple: Target triple to download.
		    preserve: Keep the sysroot after the handle is dropped and reuse
		    an existing one instead of downloading again.
		    save_archives: Keep downloaded archives in the cache root.
		    Defaults to ``preserve``.

		Returns:
		    The installed sysroot.

		Raises:
		    AcquisitionError: If a module cannot be obtained from any source.
		    SysrootError: On filesystem failures.

		"""
		save_download = preserve if save_archives is None else save_archives
		download, used_fallback_cargo = self._prepare(commit, triple, save_download)
		unpack_into = download.unpack_into

		try:
			if preserve and self._is_installed(unpack_into):
				logger.info("reusing sysroot in %s", unpack_into)
			else:
				to_link: list[PurePosixPath] = []
				for module in INSTALL_ORDER:
					to_link.extend(self.get_module(download, module))
				link_shared_libraries(unpack_into, triple, to_link)
			rustc = self._canonicalize(unpack_into / RUSTC_BIN, commit.sha)
			rustdoc = self._canonicalize(unpack_into / RUSTDOC_BIN, commit.sha)
			cargo = self._canonicalize(unpack_into / CARGO_BIN, download.cargo_sha)
		except Exception:
			# No handle exists yet to clean up the partial tree
			remove_sysroot(unpack_into)
			raise

		return Sysroot(
			sha=commit.sha,
			rustc=rustc,
			rustdoc=rustdoc,
			cargo=cargo,
			triple=triple,
			cache_root=self.cache_root,
			preserve=preserve,
			used_fallback_cargo=used_fallback_cargo,
		)

	def install_with_local_rustc(
		self,
		commit: Commit,
		rustc: Path | str,
		triple: str,
		preserve: bool = False,
	) -> Sysroot:
		"""
		Pair a locally built rustc with the cargo matching ``commit``.

		Only cargo is downloaded; rustdoc is expected next to ``rustc``.

		"""
		download, used_fallback_cargo = self._prepare(commit, triple, preserve)
		local_rustc = self._canonicalize(Path(rustc), commit.sha)

		try:
			self.get_module(download, ModuleVariant.CARGO)
			cargo = self._canonicalize(download.unpack_into / CARGO_BIN, download.cargo_sha)
		except Exception:
			remove_sysroot(download.unpack_into)
			raise

		return Sysroot(
			sha=commit.sha,
			rustc=local_rustc,
			rustdoc=local_rustc.parent / "rustdoc",
			cargo=cargo,
			triple=triple,
			cache_root=self.cache_root,
			preserve=preserve,
			used_fallback_cargo=used_fallback_cargo,
		)

"""
Unpack toolchain archives into the sysroot layout.

Every dist archive wraps its contents in a single container directory,
which is stripped. rustc and cargo then unpack verbatim; rust-std only
contributes its ``lib/rustlib`` subtree, relocated under rustc. Shared
libraries in rust-std are byte-identical to the ones shipped with rustc,
so instead of unpacking them a hard link to rustc's copy is created once
all modules are in place.

"""

from __future__ import annotations

import gzip
import logging
import lzma
import os
import tarfile
import zlib
from pathlib import Path, PurePosixPath
from typing import IO, TYPE_CHECKING

from rust_sysroot.errors import ArchiveError, SysrootError
from rust_sysroot.sysroot.constants import RUSTC_LIB_DIR, RUSTLIB_DIR, ModuleVariant, shared_library_extension

if TYPE_CHECKING:
	from collections.abc import Iterable

logger = logging.getLogger(__name__)

# Errors a truncated or corrupt archive can surface while streaming.
# BadGzipFile is the only OSError among them; other OSErrors come from the disk.
CORRUPT_ARCHIVE_ERRORS = (tarfile.TarError, EOFError, lzma.LZMAError, zlib.error, gzip.BadGzipFile)


def decompress(stream: IO[bytes], extension: str) -> IO[bytes]:
	"""
	Wrap a compressed stream in the matching decoder.

	Raises:
	    ArchiveError: For an unknown extension.

	"""
	if extension == "gz":
		return gzip.GzipFile(fileobj=stream, mode="rb")
	if extension == "xz":
		return lzma.LZMAFile(stream)
	msg = f"unknown extension {extension}"
	raise ArchiveError(msg)


def strip_container(name: str) -> PurePosixPath | None:
	"""Drop the top-level directory of an archive path, or None for the directory itself."""
	parts = PurePosixPath(name).parts
	if len(parts) < 2:  # noqa: PLR2004
		return None
	return PurePosixPath(*parts[1:])


def ensure_parent(path: Path) -> None:
	"""
	Create the intermediate directories of ``path``.

	Raises:
	    SysrootError: If the directories cannot be created.

	"""
	try:
		path.parent.mkdir(parents=True, exist_ok=True)
	except OSError as e:
		msg = f"could not create intermediate directories for {path}"
		raise SysrootError(msg) from e


class ArchiveExtractor:
	"""Unpacks module archives into ``unpack_into`` for one target triple."""

	def __init__(self, unpack_into: Path, triple: str) -> None:
		"""Initialize the extractor for one sysroot directory."""
		self.unpack_into = unpack_into
		self.triple = triple
		self.std_prefix = PurePosixPath(f"rust-std-{triple}/lib/rustlib")
		self.shared_library_extension = shared_library_extension(triple)

	def relocate(self, module: ModuleVariant, name: str) -> PurePosixPath | None:
		"""
		Map an archive member name to its path under the sysroot.

		Returns:
		    The relative destination, or None if the member is not installed.

		"""
		path = strip_container(name)
		if path is None:
			return None
		if module is not ModuleVariant.STD:
			return path
		if not path.is_relative_to(self.std_prefix):
			return None
		return PurePosixPath(RUSTLIB_DIR) / path.relative_to(self.std_prefix)

	def is_shared_library(self, module: ModuleVariant, member: tarfile.TarInfo) -> bool:
		"""Whether a rust-std member should be linked from rustc instead of unpacked."""
		return (
			module is ModuleVariant.STD
			and not member.isdir()
			and PurePosixPath(member.name).suffix == self.shared_library_extension
		)

	def extract(self, module: ModuleVariant, stream: IO[bytes]) -> list[PurePosixPath]:
		"""
		Unpack a decompressed tar stream.

		Args:
		    module: The module the archive belongs to.
		    stream: Decompressed tar data.

		Returns:
		    Paths relative to ``lib/rustlib`` of rust-std shared libraries
		    that still need to be linked.

		Raises:
		    ArchiveError: If the stream is corrupt.
		    SysrootError: If the sysroot cannot be written.

		"""
		to_link: list[PurePosixPath] = []
		try:
			with tarfile.open(fileobj=stream, mode="r|") as archive:
				for member in archive:
					path = self.relocate(module, member.name)
					if path is None:
						continue
					if self.is_shared_library(module, member):
						to_link.append(path.relative_to(RUSTLIB_DIR))
						continue
					self._unpack(archive, module, member, path)
		except CORRUPT_ARCHIVE_ERRORS as e:
			msg = f"extracting {module} into {self.unpack_into} failed: {e}"
			raise ArchiveError(msg) from e
		except OSError as e:
			msg = f"writing {module} into {self.unpack_into} failed: {e}"
			raise SysrootError(msg) from e

		logger.debug("extracted %s into %s", module, self.unpack_into)
		return to_link

	def _unpack(
		self, archive: tarfile.TarFile, module: ModuleVariant, member: tarfile.TarInfo, path: PurePosixPath
	) -> None:
		ensure_parent(self.unpack_into / path)
		changes: dict[str, str] = {"name": path.as_posix()}
		if member.islnk():
			link_target = self.relocate(module, member.linkname)
			if link_target is None:
				logger.debug("skipping hard link %s to uninstalled %s", member.name, member.linkname)
				return
			changes["linkname"] = link_target.as_posix()
		archive.extract(member.replace(**changes, deep=False), self.unpack_into, filter="data")


def link_shared_libraries(unpack_into: Path, triple: str, to_link: Iterable[PurePosixPath]) -> None:
	"""
	Hard-link rustc's shared libraries into the target library directory.

	Args:
	    unpack_into: Sysroot directory.
	    triple: Target triple the rust-std module was installed for.
	    to_link: Paths relative to ``lib/rustlib``, e.g. ``<triple>/lib/libstd-x.so``.

	Raises:
	    SysrootError: If a link cannot be created.

	"""
	link_src_prefix = PurePosixPath(triple) / "lib"
	for path in to_link:
		try:
			relative = path.relative_to(link_src_prefix)
		except ValueError as e:
			msg = f"stripping prefix {link_src_prefix} from: {path}"
			raise SysrootError(msg) from e

		src = unpack_into / RUSTC_LIB_DIR / relative
		dst = unpack_into / RUSTLIB_DIR / path
		ensure_parent(dst)
		logger.debug("linking %s to %s", src, dst)
		try:
			dst.unlink(missing_ok=True)
			os.link(src, dst)
		except OSError as e:
			msg = f"could not link {src} to {dst}: {e}"
			raise SysrootError(msg) from e

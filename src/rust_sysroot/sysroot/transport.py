"""Fetch toolchain archives from the local cache or from CI mirrors."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import requests

from rust_sysroot.errors import SysrootError, TransportError
from rust_sysroot.sysroot.constants import ARCHIVE_EXTENSIONS, MODULE_URLS

if TYPE_CHECKING:
	from collections.abc import Sequence
	from pathlib import Path

	from rust_sysroot.sysroot.constants import ModuleVariant

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


def extension_of(url: str) -> str:
	"""Return the compression extension of an archive url, e.g. ``xz``."""
	return url.rsplit(".", 1)[-1]


class ArchiveTransport:
	"""Locates archives for a module, first on disk, then on the mirrors."""

	def __init__(
		self,
		directory: Path,
		mirrors: Sequence[str] | None = None,
		session: requests.Session | None = None,
		timeout: float = 300,
	) -> None:
		"""
		Initialize the transport.

		Args:
		    directory: Cache root holding saved archives.
		    mirrors: Url templates, tried in order. Defaults to ``MODULE_URLS``.
		    session: Session used for downloads.
		    timeout: Connect/read timeout for each request in seconds.

		"""
		self.directory = directory
		self.mirrors = tuple(mirrors) if mirrors else MODULE_URLS
		self.session = session or requests.Session()
		self.timeout = timeout

	def archive_path(self, sha: str, triple: str, module: ModuleVariant, extension: str) -> Path:
		"""Return the deterministic cache location of an archive."""
		return self.directory / f"{sha}-{triple}-{module}.tar.{extension}"

	def cached_archives(self, sha: str, triple: str, module: ModuleVariant) -> list[tuple[Path, str]]:
		"""Return saved archives for a module, most compact format first."""
		found = []
		for extension in ARCHIVE_EXTENSIONS:
			path = self.archive_path(sha, triple, module, extension)
			if path.exists():
				found.append((path, extension))
		return found

	def urls(self, sha: str, triple: str, module: ModuleVariant) -> list[str]:
		"""Substitute the module coordinates into every mirror template."""
		return [
			url.replace("@MODULE@", str(module)).replace("@SHA@", sha).replace("@TRIPLE@", triple)
			for url in self.mirrors
		]

	def fetch(self, url: str) -> requests.Response:
		"""
		Start a streaming download.

		Args:
		    url: Archive url.

		Returns:
		    The open response; the caller must close it.

		Raises:
		    TransportError: If the mirror is unreachable or does not have the archive.

		"""
		logger.debug("requesting: %s", url)
		try:
			response = self.session.get(url, stream=True, timeout=self.timeout)
		except requests.RequestException as e:
			msg = f"request to {url} failed: {e}"
			raise TransportError(msg) from e

		logger.debug("%s %s", response.status_code, url)
		if not response.ok:
			response.close()
			msg = f"{url} returned HTTP {response.status_code}"
			raise TransportError(msg)
		return response

	@staticmethod
	def save(response: requests.Response, path: Path) -> None:
		"""
		Write a response body to ``path``.

		A partially written file is removed before the error propagates.

		Raises:
		    TransportError: If the download is interrupted.
		    SysrootError: If the file cannot be written.

		"""
		try:
			with path.open("wb") as f:
				for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
					f.write(chunk)
		except requests.RequestException as e:
			path.unlink(missing_ok=True)
			msg = f"download of {response.url} was interrupted: {e}"
			raise TransportError(msg) from e
		except OSError as e:
			path.unlink(missing_ok=True)
			msg = f"could not save archive to {path}: {e}"
			raise SysrootError(msg) from e
		logger.debug("saved %s to %s", response.url, path)

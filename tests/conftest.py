"""Global test fixtures and configuration."""

from __future__ import annotations

import hashlib
import io
import tarfile
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import pytest

from rust_sysroot.git.models import Commit

TRIPLE = "x86_64-unknown-linux-gnu"

RUSTC_BINARY = b"#!/bin/sh\necho rustc\n"
RUSTDOC_BINARY = b"#!/bin/sh\necho rustdoc\n"
CARGO_BINARY = b"#!/bin/sh\necho cargo\n"
LIBSTD_SO = b"\x7fELF libstd shared object"
LIBCORE_RLIB = b"!<arch> libcore"


def make_sha(seed: object) -> str:
	"""Deterministic 40 character hex sha."""
	return hashlib.sha1(str(seed).encode()).hexdigest()  # noqa: S324


def build_archive(container: str, entries: dict[str, bytes | None], extension: str = "xz") -> bytes:
	"""
	Build a compressed tarball wrapping ``entries`` in ``container``.

	Entries mapped to None become directories.
	"""
	buffer = io.BytesIO()
	mode = {"xz": "w:xz", "gz": "w:gz"}[extension]
	with tarfile.open(fileobj=buffer, mode=mode) as archive:
		for name, content in entries.items():
			info = tarfile.TarInfo(f"{container}/{name}")
			if content is None:
				info.type = tarfile.DIRTYPE
				info.mode = 0o755
				archive.addfile(info)
				continue
			info.size = len(content)
			info.mode = 0o755 if "/bin/" in name else 0o644
			archive.addfile(info, io.BytesIO(content))
	return buffer.getvalue()


def sysroot_archives(extension: str = "xz", triple: str = TRIPLE) -> dict[str, bytes]:
	"""The three module archives of a minimal sysroot, keyed by module name."""
	std_prefix = f"rust-std-{triple}/lib/rustlib/{triple}/lib"
	return {
		"rustc": build_archive(
			f"rustc-nightly-{triple}",
			{
				"rustc/bin/": None,
				"rustc/bin/rustc": RUSTC_BINARY,
				"rustc/bin/rustdoc": RUSTDOC_BINARY,
				"rustc/lib/libstd-abc123.so": LIBSTD_SO,
				"components": b"rustc\n",
			},
			extension,
		),
		"rust-std": build_archive(
			f"rust-std-nightly-{triple}",
			{
				f"{std_prefix}/libstd-abc123.so": LIBSTD_SO,
				f"{std_prefix}/libcore-abc123.rlib": LIBCORE_RLIB,
				f"rust-std-{triple}/manifest.in": b"file:lib/rustlib\n",
				"install.sh": b"#!/bin/sh\n",
			},
			extension,
		),
		"cargo": build_archive(
			f"cargo-nightly-{triple}",
			{"cargo/bin/cargo": CARGO_BINARY},
			extension,
		),
	}


class FakeResponse:
	"""Minimal stand-in for a streaming ``requests.Response``."""

	def __init__(self, url: str, body: bytes | None = None, status_code: int = 200) -> None:
		self.url = url
		self.status_code = status_code
		self.ok = status_code < 400  # noqa: PLR2004
		self._body = body or b""
		self.raw = io.BytesIO(self._body)
		self.closed = False

	def iter_content(self, chunk_size: int = 1) -> list[bytes]:
		return [self._body[i : i + chunk_size] for i in range(0, len(self._body), chunk_size)]

	def close(self) -> None:
		self.closed = True

	def __enter__(self) -> FakeResponse:
		return self

	def __exit__(self, *exc_info: object) -> None:
		self.close()


class FakeSession:
	"""Serves fixed bodies by url and records every request."""

	def __init__(self, responses: dict[str, bytes] | None = None) -> None:
		self.responses = dict(responses or {})
		self.requested: list[str] = []

	def get(self, url: str, **_kwargs: object) -> FakeResponse:
		self.requested.append(url)
		if url in self.responses:
			return FakeResponse(url, self.responses[url])
		return FakeResponse(url, status_code=404)


@pytest.fixture
def triple() -> str:
	"""Target triple used throughout the sysroot tests."""
	return TRIPLE


@pytest.fixture
def commits() -> list[Commit]:
	"""Twenty bors commits, one hour apart, after the cargo cutoff."""
	start = datetime(2018, 1, 1, tzinfo=UTC)
	return [Commit(sha=make_sha(i), date=start + timedelta(hours=i), summary=f"Auto merge of #{i}") for i in range(20)]


@pytest.fixture
def archives() -> Callable[..., dict[str, bytes]]:
	"""Factory for minimal sysroot archives."""
	return sysroot_archives


@pytest.fixture
def fake_session() -> Callable[..., FakeSession]:
	"""Factory for sessions serving fixed archive bodies."""
	return FakeSession

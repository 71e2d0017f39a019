"""Constants for downloading and laying out sysroots."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

# Mirror url templates in the order they are tried. The CI bucket layout
# changed several times, so older commits only exist under older layouts.
MODULE_URLS: tuple[str, ...] = (
	"https://s3.amazonaws.com/rust-lang-ci/rustc-builds/@SHA@/@MODULE@-nightly-@TRIPLE@.tar.xz",
	"https://s3.amazonaws.com/rust-lang-ci/rustc-builds/@SHA@/@MODULE@-nightly-@TRIPLE@.tar.gz",
	"https://s3.amazonaws.com/rust-lang-ci/rustc-builds/@SHA@/dist/@MODULE@-nightly-@TRIPLE@.tar.gz",
	"https://s3.amazonaws.com/rust-lang-ci/rustc-builds/@SHA@/@MODULE@-1.16.0-dev-@TRIPLE@.tar.gz",
	"https://s3.amazonaws.com/rust-lang-ci/rustc-builds-try/@SHA@/@MODULE@-nightly-@TRIPLE@.tar.xz",
)

# Cached archive extensions, most compact first
ARCHIVE_EXTENSIONS: tuple[str, ...] = ("xz", "gz")

# Cargo from before this date is broken; such commits get a known-good cargo
FALLBACK_CARGO_CUTOFF = datetime(2017, 3, 20, tzinfo=UTC)
FALLBACK_CARGO_SHA = "53eb08bedc8719844bb553dbe1a39d9010783ff5"

RUSTC_BIN = "rustc/bin/rustc"
RUSTDOC_BIN = "rustc/bin/rustdoc"
CARGO_BIN = "cargo/bin/cargo"
RUSTLIB_DIR = "rustc/lib/rustlib"
RUSTC_LIB_DIR = "rustc/lib"


class ModuleVariant(str, Enum):
	"""Independently distributed archives that make up a sysroot."""

	RUSTC = "rustc"
	STD = "rust-std"
	CARGO = "cargo"

	def __str__(self) -> str:
		"""Return the module name used in archive file names."""
		return self.value


# Install order: rust-std links against files shipped by rustc
INSTALL_ORDER: tuple[ModuleVariant, ...] = (ModuleVariant.RUSTC, ModuleVariant.STD, ModuleVariant.CARGO)


def shared_library_extension(triple: str) -> str:
	"""Return the dynamic library extension for a target triple."""
	if "apple" in triple or "darwin" in triple:
		return ".dylib"
	if "windows" in triple:
		return ".dll"
	return ".so"

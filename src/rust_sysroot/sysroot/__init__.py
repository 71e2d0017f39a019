"""Download and manage Rust sysroots."""

from .constants import FALLBACK_CARGO_CUTOFF, FALLBACK_CARGO_SHA, MODULE_URLS, ModuleVariant
from .extract import ArchiveExtractor, decompress, link_shared_libraries
from .manager import Sysroot, SysrootDownload, SysrootManager, cargo_sha_for
from .transport import ArchiveTransport

__all__ = [
	"FALLBACK_CARGO_CUTOFF",
	"FALLBACK_CARGO_SHA",
	"MODULE_URLS",
	"ArchiveExtractor",
	"ArchiveTransport",
	"ModuleVariant",
	"Sysroot",
	"SysrootDownload",
	"SysrootManager",
	"cargo_sha_for",
	"decompress",
	"link_shared_libraries",
]

"""Exception hierarchy for rust-sysroot."""

from __future__ import annotations


class SysrootError(Exception):
	"""Base class for all rust-sysroot errors."""


class ResolutionError(SysrootError):
	"""Raised when the integration commit history cannot be resolved."""


class AcquisitionError(SysrootError):
	"""Raised when a toolchain module cannot be obtained from any source."""


class TransportError(AcquisitionError):
	"""Raised when a mirror cannot be reached."""


class ArchiveError(AcquisitionError):
	"""Raised when an archive cannot be decompressed or unpacked."""


class ExecutionError(SysrootError):
	"""Raised when the test case cannot be spawned."""


class BisectError(SysrootError, ValueError):
	"""Raised when a bisection has nothing to search."""

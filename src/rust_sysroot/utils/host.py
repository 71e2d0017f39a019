"""Host platform detection."""

from __future__ import annotations

import logging
import subprocess

from rust_sysroot.errors import SysrootError

logger = logging.getLogger(__name__)

HOST_PREFIX = "host: "


def get_host_triple(rustc: str = "rustc") -> str:
	"""
	Ask the installed rustc for the host triple.

	Args:
	    rustc: The rustc executable to query.

	Returns:
	    The target triple of the host, e.g. ``x86_64-unknown-linux-gnu``.

	Raises:
	    SysrootError: If rustc cannot be run or does not report a host.

	"""
	try:
		result = subprocess.run([rustc, "-vV"], capture_output=True, text=True, check=True)  # noqa: S603
	except (OSError, subprocess.CalledProcessError) as e:
		msg = "running rustc -vV to obtain host triple failed; try --triple"
		raise SysrootError(msg) from e

	for line in result.stdout.splitlines():
		if line.startswith(HOST_PREFIX):
			triple = line[len(HOST_PREFIX) :].strip()
			logger.debug("Detected host triple %s", triple)
			return triple

	msg = "rustc -vV did not report a host triple; try --triple"
	raise SysrootError(msg)

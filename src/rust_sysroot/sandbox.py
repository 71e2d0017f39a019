"""Run a test case against an installed sysroot."""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import TYPE_CHECKING

from rust_sysroot.errors import ExecutionError

if TYPE_CHECKING:
	from rust_sysroot.sysroot.manager import Sysroot

logger = logging.getLogger(__name__)


def build_env(sysroot: Sysroot, cwd: Path | None = None) -> dict[str, str]:
	"""
	Build the environment a test case runs in.

	The environment starts empty so that variables such as
	``CARGO_INCREMENTAL`` cannot leak in; only ``PATH`` is inherited,
	since cargo and rustc need it to find linkers. Each tool is exposed
	both as an absolute path and relative to the working directory.

	Args:
	    sysroot: The toolchain to expose.
	    cwd: Directory the relative paths are computed from. Defaults to
	    the current working directory.

	Returns:
	    The complete environment.

	"""
	cwd = cwd or Path.cwd()
	env = {"PATH": os.environ.get("PATH", "")}
	for name, path in (("CARGO", sysroot.cargo), ("RUSTC", sysroot.rustc), ("RUSTDOC", sysroot.rustdoc)):
		env[name] = str(path)
		env[f"{name}_RELATIVE"] = os.path.relpath(path, cwd)
	return env


def run_test(sysroot: Sysroot, test_case: Path | str) -> bool:
	"""
	Run ``test_case`` with the sysroot and report whether it is broken.

	The test's output is not captured; only its exit status matters.

	Args:
	    sysroot: The toolchain to test.
	    test_case: Executable reproducing the regression.

	Returns:
	    True if the test case exited unsuccessfully, i.e. the regression reproduced.

	Raises:
	    ExecutionError: If the test case cannot be started.

	"""
	try:
		result = subprocess.run([str(test_case)], env=build_env(sysroot), check=False)  # noqa: S603
	except OSError as e:
		msg = f"could not run test case {test_case}: {e}"
		raise ExecutionError(msg) from e

	logger.debug("%s exited with status %d", test_case, result.returncode)
	return result.returncode != 0

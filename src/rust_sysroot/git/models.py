"""Data models for integration commits."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime

# Full or abbreviated commit id, as opposed to a branch name
HEX_SHA = re.compile(r"[0-9a-f]{7,40}")


@dataclass(frozen=True)
class Commit:
	"""A bors merge commit on the integration branch."""

	sha: str
	date: datetime
	summary: str = field(default="", compare=False)

	@property
	def short_sha(self) -> str:
		"""The abbreviated sha used in progress messages."""
		return self.sha[:9]

	def __str__(self) -> str:
		"""Format the commit as ``sha (date)``."""
		return f"{self.sha} ({self.date.isoformat()})"

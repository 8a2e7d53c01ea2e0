from __future__ import annotations

import os
from dataclasses import dataclass

ENV_THENIFY_PROMISE = "THENIFY_PROMISE"
ENV_THENIFY_NO_INLINE = "THENIFY_NO_INLINE"


def _flag(name: str) -> bool:
	value = os.environ.get(name)
	if value is None:
		return False
	return value not in {"0", "false", "False", ""}


@dataclass(slots=True)
class TransformOptions:
	"""Settings for one transform call.

	inline runs the inliner after every function is rewritten. promise_name
	is the global the chains start from (`Promise.resolve()`). With
	strict_top_level, a rewritten function always resolves with what the
	original returned; without it, a function that only awaits may resolve
	with the last awaited value.
	"""

	inline: bool = True
	promise_name: str = "Promise"
	strict_top_level: bool = True

	@classmethod
	def from_env(cls) -> TransformOptions:
		return cls(
			inline=not _flag(ENV_THENIFY_NO_INLINE),
			promise_name=os.environ.get(ENV_THENIFY_PROMISE) or "Promise",
		)

"""Monotonic tags that invalidate stale asynchronous completions."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class SequenceGuard:
    """Counter carried by a sub-model and echoed back by its timers and waits.

    A completion whose tag is not ``value`` belongs to an abandoned round and
    must be dropped without side effects. Leaving a context means calling
    :meth:`advance`; in-flight rounds are never cancelled explicitly.
    """

    value: int = 0

    def advance(self) -> "SequenceGuard":
        return SequenceGuard(self.value + 1)

    def accepts(self, tag: int) -> bool:
        return tag == self.value

"""Coded warnings and the policy that suppresses or escalates them."""

from __future__ import annotations

import warnings
from dataclasses import dataclass

from solidtree.errors import WarningAsError

WARNING_CODES: dict[str, str] = {
    "W01": "coplanar hull input produced a zero-thickness hull",
    "W02": "boolean operation produced an empty mesh",
    "W03": "clockwise profile was reoriented",
}
KNOWN_CODES: frozenset[str] = frozenset(WARNING_CODES)


class SolidTreeWarning(UserWarning):
    """Warning with a machine-readable code."""

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        self.detail = message
        super().__init__(f"[{code}] {message}")


@dataclass(frozen=True)
class WarningPolicy:
    """Per-code handling of warnings. Suppression wins over escalation."""

    warn_as_error: frozenset[str] = frozenset()
    suppress: frozenset[str] = frozenset()

    @classmethod
    def from_options(cls, warn_as_error: str | None = None, suppress: str | None = None) -> WarningPolicy | None:
        """Policy from comma-separated code lists, or None when neither is given.

        Raises ``ValueError`` for unknown codes.
        """
        if warn_as_error is None and suppress is None:
            return None
        return cls(
            warn_as_error=parse_code_list(warn_as_error or ""),
            suppress=parse_code_list(suppress or ""),
        )

    def action(self, code: str) -> str:
        if code in self.suppress:
            return "ignore"
        if code in self.warn_as_error:
            return "error"
        return "warn"


def emit_warning(code: str, message: str, *, policy: WarningPolicy | None = None) -> None:
    """Issue a ``SolidTreeWarning``, or drop or raise it as ``policy`` says.

    Escalated codes raise ``WarningAsError``.
    """
    action = policy.action(code) if policy is not None else "warn"
    if action == "ignore":
        return
    if action == "error":
        raise WarningAsError(f"[{code}] {message}")
    warnings.warn(SolidTreeWarning(code, message), stacklevel=2)


def parse_code_list(raw: str) -> frozenset[str]:
    """Parse a comma-separated string of W-codes, e.g. ``"W01, W03"``."""
    codes = frozenset(token.strip() for token in raw.split(",")) - {""}
    unknown = sorted(codes - KNOWN_CODES)
    if unknown:
        raise ValueError(f"Unknown warning code: {unknown[0]!r} (known: {sorted(KNOWN_CODES)})")
    return codes

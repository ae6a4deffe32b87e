"""Tessellation resolution settings threaded through evaluation."""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from solidtree.errors import ResolutionError

MIN_SEGMENTS = 3
GRID_FINE = 1e-8

DEFAULT_FN = 0
DEFAULT_FA = 12.0
DEFAULT_FS = 2.0


def _check_fn(fn: int) -> int:
    if isinstance(fn, bool) or not isinstance(fn, int):
        if isinstance(fn, float) and fn.is_integer():
            fn = int(fn)
        else:
            raise ResolutionError(f"fn must be an integer, got {fn!r}")
    if fn < 0:
        raise ResolutionError(f"fn must be >= 0, got {fn}")
    if 0 < fn < MIN_SEGMENTS:
        raise ResolutionError(
            f"fn={fn} is below the minimum of {MIN_SEGMENTS} segments"
        )
    return fn


def _check_positive(name: str, value: float) -> float:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise ResolutionError(f"{name} must be a number, got {value!r}")
    if not math.isfinite(value) or value <= 0:
        raise ResolutionError(f"{name} must be > 0, got {value}")
    return float(value)


def check_overrides(overrides: dict[str, object]) -> dict[str, float]:
    """Validate ``fn``/``fa``/``fs`` overrides and return them normalised."""
    out: dict[str, float] = {}
    for name, value in overrides.items():
        out[name] = _check_fn(value) if name == "fn" else _check_positive(name, value)  # type: ignore[arg-type]
    return out


@dataclass(frozen=True)
class ResolutionContext:
    """Immutable snapshot of the active tessellation settings.

    ``fn`` is a fixed fragment count (0 means unset), ``fa`` the minimum
    angle per fragment in degrees and ``fs`` the minimum fragment length.
    ``layers`` records every override pushed on top of the defaults, in order.

    The defaults are coarse: a circle of radius 2.5 gets 8 fragments, about
    10% short of the true area. Scenes that compare against exact volumes
    set ``fn`` explicitly.
    """

    fn: int = DEFAULT_FN
    fa: float = DEFAULT_FA
    fs: float = DEFAULT_FS
    layers: tuple[tuple[tuple[str, float], ...], ...] = field(default=(), compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "fn", _check_fn(self.fn))
        object.__setattr__(self, "fa", _check_positive("fa", self.fa))
        object.__setattr__(self, "fs", _check_positive("fs", self.fs))

    def push(
        self,
        fn: int | None = None,
        fa: float | None = None,
        fs: float | None = None,
    ) -> ResolutionContext:
        """Return a new context with the given overrides layered on top."""
        overrides = tuple(
            (name, value)
            for name, value in (("fn", fn), ("fa", fa), ("fs", fs))
            if value is not None
        )
        if not overrides:
            return self
        return ResolutionContext(
            fn=self.fn if fn is None else fn,
            fa=self.fa if fa is None else fa,
            fs=self.fs if fs is None else fs,
            layers=self.layers + (overrides,),
        )

    def key(self) -> tuple[int, float, float]:
        """Effective settings, used as part of memoisation keys."""
        return (self.fn, self.fa, self.fs)

    def fragments(self, radius: float, fn: int | None = None) -> int:
        """Number of segments used to approximate a circle of ``radius``.

        An explicit ``fn`` takes precedence over the context.
        """
        if fn is not None and fn != 0:
            return _check_fn(fn)
        if radius < GRID_FINE:
            return MIN_SEGMENTS
        if self.fn > 0:
            return max(self.fn, MIN_SEGMENTS)
        count = math.ceil(max(min(360.0 / self.fa, radius * 2.0 * math.pi / self.fs), 5))
        return max(int(count), MIN_SEGMENTS)


DEFAULT_RESOLUTION = ResolutionContext()

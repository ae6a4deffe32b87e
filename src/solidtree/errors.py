"""Custom exception hierarchy for the solidtree evaluator."""

from __future__ import annotations


class SolidTreeError(Exception):
    """Base exception for all solidtree errors.

    ``node_path`` is filled in by the expander or evaluator with the location
    of the node that raised, e.g. ``difference[1]/cylinder``.
    """

    kind = "SolidTreeError"

    def __init__(self, message: str, *, node_path: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.node_path = node_path

    def __str__(self) -> str:
        if self.node_path:
            return f"{self.kind}: {self.message} (at {self.node_path})"
        return f"{self.kind}: {self.message}"

    def to_record(self) -> dict[str, str | None]:
        """Structured diagnostic record ``{kind, message, node_path}``."""
        return {"kind": self.kind, "message": self.message, "node_path": self.node_path}


class ParseError(SolidTreeError):
    """Raised when YAML parsing or schema deserialization fails."""

    kind = "ParseError"


class ParameterError(SolidTreeError):
    """Raised when module arguments cannot be bound or validated."""

    kind = "ParameterError"


class MissingRequired(ParameterError):
    kind = "ParameterError::MissingRequired"


class InvalidParameter(ParameterError):
    kind = "ParameterError::InvalidParameter"


class AssertionFailed(ParameterError):
    kind = "ParameterError::AssertionFailed"


class GeometryError(SolidTreeError):
    """Raised when geometry generation or combination fails."""

    kind = "GeometryError"


class InvalidDimension(GeometryError):
    kind = "GeometryError::InvalidDimension"


class SelfIntersectingProfile(GeometryError):
    kind = "GeometryError::SelfIntersectingProfile"


class ProfileCrossesAxis(GeometryError):
    kind = "GeometryError::ProfileCrossesAxis"


class DegenerateHull(GeometryError):
    kind = "GeometryError::DegenerateHull"


class NonManifoldResult(GeometryError):
    kind = "GeometryError::NonManifoldResult"


class DimensionMismatch(GeometryError):
    kind = "GeometryError::DimensionMismatch"


class ResolutionError(SolidTreeError):
    """Raised when tessellation settings fall below the supported minimum."""

    kind = "ResolutionError"


class WarningAsError(SolidTreeError):
    """Raised when a warning code is escalated by the active WarningPolicy."""

    kind = "WarningAsError"


class ExportError(SolidTreeError):
    """Raised when glTF/GLB or JSON export fails."""

    kind = "ExportError"


class EvaluationAborted(Exception):
    """Evaluation was cancelled through a CancellationToken.

    Not a SolidTreeError; :func:`~solidtree.evaluator.evaluate_scene` maps it
    to the ``aborted`` outcome.
    """

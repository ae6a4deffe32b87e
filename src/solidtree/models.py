"""Pydantic v2 schema models for solidtree scene documents."""

from __future__ import annotations

import re
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

ParamType = Literal["number", "integer", "boolean", "string", "vector", "any"]


class ResolutionSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    fn: int = Field(default=0, ge=0)
    fa: float = Field(default=12.0, gt=0)
    fs: float = Field(default=2.0, gt=0)


class ParameterDef(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    type: ParamType = "any"
    default: Any = None
    minimum: float | None = None
    maximum: float | None = None

    @field_validator("name")
    @classmethod
    def _check_name(cls, v: str) -> str:
        if not _IDENTIFIER_RE.match(v):
            raise ValueError(f"invalid parameter name: {v!r}")
        return v

    @model_validator(mode="after")
    def _check_range(self) -> ParameterDef:
        if self.minimum is not None and self.maximum is not None and self.minimum > self.maximum:
            raise ValueError(f"parameter {self.name!r}: minimum {self.minimum} > maximum {self.maximum}")
        return self

    @property
    def required(self) -> bool:
        """True when the document gave no default (an explicit ``null`` still counts)."""
        return "default" not in self.model_fields_set


class AssertionDef(BaseModel):
    model_config = ConfigDict(extra="forbid")

    expr: str
    message: str | None = None


class ModuleDef(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    params: list[ParameterDef] = Field(default_factory=list)
    assertions: list[AssertionDef] = Field(default_factory=list, alias="assert")
    body: Any

    @field_validator("params", mode="before")
    @classmethod
    def _params_shorthand(cls, v: Any) -> Any:
        # `params: [a, b]` is shorthand for required parameters of type any
        if isinstance(v, list):
            return [{"name": p} if isinstance(p, str) else p for p in v]
        return v

    @field_validator("assertions", mode="before")
    @classmethod
    def _assertion_shorthand(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = [v]
        if isinstance(v, list):
            return [{"expr": a} if isinstance(a, str) else a for a in v]
        return v

    @model_validator(mode="after")
    def _check_unique_params(self) -> ModuleDef:
        names = [p.name for p in self.params]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise ValueError(f"duplicate parameter names: {dupes}")
        if self.body is None:
            raise ValueError("module body must not be empty")
        return self


class SceneDocument(BaseModel):
    """Top-level scene document."""

    model_config = ConfigDict(extra="forbid")

    version: str
    resolution: ResolutionSettings = Field(default_factory=ResolutionSettings)
    params: dict[str, Any] = Field(default_factory=dict)
    modules: dict[str, ModuleDef] = Field(default_factory=dict)
    scene: Any

    @field_validator("version", mode="before")
    @classmethod
    def _version_to_str(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("modules")
    @classmethod
    def _check_module_names(cls, v: dict[str, ModuleDef]) -> dict[str, ModuleDef]:
        for name in v:
            if not _IDENTIFIER_RE.match(name):
                raise ValueError(f"invalid module name: {name!r}")
        return v

    @field_validator("scene")
    @classmethod
    def _check_scene(cls, v: Any) -> Any:
        if v is None:
            raise ValueError("scene must not be empty")
        if not isinstance(v, (dict, list)):
            raise ValueError("scene must be a node mapping or a list of nodes")
        return v

"""Tests for the pydantic scene document schema."""

import pytest
from pydantic import ValidationError

from solidtree.models import ModuleDef, ParameterDef, ResolutionSettings, SceneDocument


class TestResolutionSettings:
    def test_defaults(self):
        settings = ResolutionSettings()
        assert (settings.fn, settings.fa, settings.fs) == (0, 12.0, 2.0)

    def test_negative_fn(self):
        with pytest.raises(ValidationError):
            ResolutionSettings(fn=-1)

    def test_zero_fa(self):
        with pytest.raises(ValidationError):
            ResolutionSettings(fa=0)

    def test_extra_forbidden(self):
        with pytest.raises(ValidationError):
            ResolutionSettings(segments=8)


class TestParameterDef:
    def test_required_without_default(self):
        assert ParameterDef(name="w").required

    def test_explicit_null_default(self):
        assert not ParameterDef(name="w", default=None).required

    def test_bad_name(self):
        with pytest.raises(ValidationError, match="invalid parameter name"):
            ParameterDef(name="2w")

    def test_inverted_range(self):
        with pytest.raises(ValidationError, match="minimum"):
            ParameterDef(name="w", minimum=5, maximum=1)

    def test_unknown_type(self):
        with pytest.raises(ValidationError):
            ParameterDef(name="w", type="matrix")


class TestModuleDef:
    def test_shorthand_params_and_assert(self):
        module = ModuleDef.model_validate({"params": ["a", "b"], "assert": "$a < $b", "body": {"cube": "$a"}})
        assert [p.name for p in module.params] == ["a", "b"]
        assert all(p.required for p in module.params)
        assert module.assertions[0].expr == "$a < $b"

    def test_assertion_list_with_message(self):
        module = ModuleDef.model_validate(
            {"assert": [{"expr": "$a > 0", "message": "a must be positive"}], "params": ["a"], "body": {"cube": 1}}
        )
        assert module.assertions[0].message == "a must be positive"

    def test_duplicate_params(self):
        with pytest.raises(ValidationError, match="duplicate parameter names"):
            ModuleDef.model_validate({"params": ["a", "a"], "body": {"cube": 1}})

    def test_null_body(self):
        with pytest.raises(ValidationError, match="body must not be empty"):
            ModuleDef.model_validate({"body": None})


class TestSceneDocument:
    def test_minimal(self):
        doc = SceneDocument(version="0.1", scene={"cube": 1})
        assert doc.modules == {}
        assert doc.resolution.fn == 0

    def test_numeric_version(self):
        assert SceneDocument(version=0.1, scene={"cube": 1}).version == "0.1"

    def test_scene_list(self):
        assert SceneDocument(version="0.1", scene=[{"cube": 1}]).scene == [{"cube": 1}]

    def test_scalar_scene_rejected(self):
        with pytest.raises(ValidationError, match="scene must be a node mapping"):
            SceneDocument(version="0.1", scene="cube")

    def test_bad_module_name(self):
        with pytest.raises(ValidationError, match="invalid module name"):
            SceneDocument(version="0.1", scene={"cube": 1}, modules={"my-part": {"body": {"cube": 1}}})

    def test_unknown_top_level_key(self):
        with pytest.raises(ValidationError):
            SceneDocument(version="0.1", scene={"cube": 1}, units="mm")

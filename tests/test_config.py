"""Tests for grammar and engine configuration."""

import pytest

from sandexpr import EngineConfig, GrammarConfig
from sandexpr.config import DEFAULT_MAX_DEPTH, DEFAULT_MAX_NESTING


class TestGrammarConfig:
    """Tests for operator toggles."""

    def test_defaults(self):
        config = GrammarConfig()

        assert config.is_enabled("add")
        assert config.is_enabled("in")
        assert config.is_enabled("logical")
        assert not config.is_enabled("fndef")

    def test_nested_options(self):
        config = GrammarConfig.from_options({"operators": {"fndef": True, "power": False}})

        assert config.fndef
        assert not config.power
        assert config.add

    def test_flat_options(self):
        config = GrammarConfig.from_options({"in": False})

        assert not config.in_
        assert not config.is_enabled("in")

    def test_empty_options(self):
        assert GrammarConfig.from_options(None) == GrammarConfig()
        assert GrammarConfig.from_options({"operators": None}) == GrammarConfig()

    def test_unknown_operator(self):
        with pytest.raises(ValueError, match="Unknown operator option"):
            GrammarConfig.from_options({"operators": {"teleport": True}})

    def test_unknown_top_level_key(self):
        with pytest.raises(ValueError, match="Unknown grammar options"):
            GrammarConfig.from_options({"operators": {}, "extra": 1})


class TestEngineConfig:
    """Tests for engine configuration sources."""

    def test_defaults(self):
        config = EngineConfig()

        assert config.max_depth == DEFAULT_MAX_DEPTH
        assert config.max_nesting == DEFAULT_MAX_NESTING
        assert config.grammar == GrammarConfig()

    @pytest.mark.parametrize("field", ["max_depth", "max_nesting"])
    def test_limits_must_be_positive(self, field):
        with pytest.raises(ValueError, match="must be positive"):
            EngineConfig(**{field: 0})

    def test_from_mapping(self):
        config = EngineConfig.from_mapping(
            {"operators": {"fndef": True}, "max_depth": 50, "max_nesting": 10}
        )

        assert config.grammar.fndef
        assert config.max_depth == 50
        assert config.max_nesting == 10

    def test_from_mapping_rejects_unknown_keys(self):
        with pytest.raises(ValueError, match="Unknown engine options"):
            EngineConfig.from_mapping({"timeout": 5})

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text(
            "max_depth: 80\n"
            "operators:\n"
            "  fndef: true\n"
            "  assignment: false\n"
        )

        config = EngineConfig.from_yaml(path)

        assert config.max_depth == 80
        assert config.grammar.fndef
        assert not config.grammar.assignment
        assert config.max_nesting == DEFAULT_MAX_NESTING

    def test_from_empty_yaml(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert EngineConfig.from_yaml(path) == EngineConfig()

    def test_from_yaml_requires_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- fndef\n")

        with pytest.raises(ValueError, match="must be a mapping"):
            EngineConfig.from_yaml(path)

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("SANDEXPR_MAX_DEPTH", "120")
        monkeypatch.setenv("SANDEXPR_MAX_NESTING", "16")
        monkeypatch.setenv("SANDEXPR_OPERATORS", "fndef, -power")

        config = EngineConfig.from_env()

        assert config.max_depth == 120
        assert config.max_nesting == 16
        assert config.grammar.fndef
        assert not config.grammar.power
        assert config.grammar.add

    def test_from_env_overlays_base(self, monkeypatch):
        monkeypatch.delenv("SANDEXPR_MAX_DEPTH", raising=False)
        monkeypatch.delenv("SANDEXPR_MAX_NESTING", raising=False)
        monkeypatch.setenv("SANDEXPR_OPERATORS", "-add")
        base = EngineConfig(grammar=GrammarConfig(fndef=True), max_depth=30)

        config = EngineConfig.from_env(base)

        assert config.max_depth == 30
        assert config.grammar.fndef
        assert not config.grammar.add

    def test_from_env_unknown_operator(self, monkeypatch):
        monkeypatch.setenv("SANDEXPR_OPERATORS", "warp")

        with pytest.raises(ValueError):
            EngineConfig.from_env()

"""Grammar and engine configuration."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

DEFAULT_MAX_DEPTH = 200
DEFAULT_MAX_NESTING = 64


@dataclass(frozen=True)
class GrammarConfig:
    """Operator toggles applied uniformly by the parser.

    Core operators are enabled unless switched off. Extension operators
    (currently only ``fndef``, the ``f(x) = expr`` local function
    definition) are disabled unless switched on. Conditional, member access,
    indexing and call syntax cannot be disabled.
    """

    add: bool = True
    subtract: bool = True
    multiply: bool = True
    divide: bool = True
    remainder: bool = True
    power: bool = True
    comparison: bool = True
    logical: bool = True
    in_: bool = True
    assignment: bool = True
    sequence: bool = True
    array: bool = True
    fndef: bool = False

    @classmethod
    def from_options(cls, options: Mapping[str, Any] | None) -> GrammarConfig:
        """Build a config from an options mapping.

        Accepts ``{"operators": {"fndef": True}}`` or the flat
        ``{"fndef": True}``. Unknown option names raise ValueError.
        """
        if not options:
            return cls()
        if "operators" in options:
            extra = set(options) - {"operators"}
            if extra:
                raise ValueError(f"Unknown grammar options: {sorted(extra)}")
            options = options["operators"] or {}

        known = {_option_name(f.name): f.name for f in fields(cls)}
        values: dict[str, bool] = {}
        for name, enabled in options.items():
            if name not in known:
                raise ValueError(f"Unknown operator option: {name!r}")
            values[known[name]] = bool(enabled)
        return cls(**values)

    def is_enabled(self, option: str) -> bool:
        """Check an operator option by its public name ("in", "fndef", ...)."""
        return bool(getattr(self, "in_" if option == "in" else option))


def _option_name(field_name: str) -> str:
    return "in" if field_name == "in_" else field_name


@dataclass(frozen=True)
class EngineConfig:
    """Configuration for an ExpressionEngine.

    Attributes:
        grammar: Operator toggles for the parser
        max_depth: Evaluation depth limit (nested node visits plus local
            function calls)
        max_nesting: Parser nesting limit (parentheses, brackets, unary chains)
    """

    grammar: GrammarConfig = field(default_factory=GrammarConfig)
    max_depth: int = DEFAULT_MAX_DEPTH
    max_nesting: int = DEFAULT_MAX_NESTING

    def __post_init__(self) -> None:
        if self.max_depth < 1:
            raise ValueError(f"max_depth must be positive, got {self.max_depth}")
        if self.max_nesting < 1:
            raise ValueError(f"max_nesting must be positive, got {self.max_nesting}")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> EngineConfig:
        """Create config from a mapping.

        Recognized keys: ``operators`` (see GrammarConfig.from_options),
        ``max_depth`` and ``max_nesting``.
        """
        if not data:
            return cls()
        extra = set(data) - {"operators", "max_depth", "max_nesting"}
        if extra:
            raise ValueError(f"Unknown engine options: {sorted(extra)}")
        grammar = GrammarConfig.from_options({"operators": data.get("operators") or {}})
        return cls(
            grammar=grammar,
            max_depth=int(data.get("max_depth", DEFAULT_MAX_DEPTH)),
            max_nesting=int(data.get("max_nesting", DEFAULT_MAX_NESTING)),
        )

    @classmethod
    def from_yaml(cls, path: Path | str) -> EngineConfig:
        """Load config from a YAML file with the same shape as from_mapping."""
        with open(path) as f:
            data = yaml.safe_load(f)
        if data is not None and not isinstance(data, Mapping):
            raise ValueError(f"Engine config in {path} must be a mapping")
        return cls.from_mapping(data)

    @classmethod
    def from_env(cls, base: EngineConfig | None = None) -> EngineConfig:
        """Create config from environment variables.

        - SANDEXPR_MAX_DEPTH: evaluation depth limit
        - SANDEXPR_MAX_NESTING: parser nesting limit
        - SANDEXPR_OPERATORS: comma-separated toggles, e.g. "fndef,-power"
        """
        config = base or cls()

        max_depth = os.environ.get("SANDEXPR_MAX_DEPTH")
        if max_depth:
            config = replace(config, max_depth=int(max_depth))

        max_nesting = os.environ.get("SANDEXPR_MAX_NESTING")
        if max_nesting:
            config = replace(config, max_nesting=int(max_nesting))

        operators = os.environ.get("SANDEXPR_OPERATORS")
        if operators:
            toggles: dict[str, bool] = {
                _option_name(f.name): config.grammar.is_enabled(_option_name(f.name))
                for f in fields(GrammarConfig)
            }
            for item in operators.split(","):
                item = item.strip()
                if not item:
                    continue
                enabled = not item.startswith("-")
                toggles[item.lstrip("+-")] = enabled
            config = replace(config, grammar=GrammarConfig.from_options(toggles))

        return config

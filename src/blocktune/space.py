# Copyright (c) Syntropy Systems
"""Candidate space declaration and grid enumeration."""
from __future__ import annotations

import itertools
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, cast

from blocktune.errors import ConfigError
from blocktune.models.trial import Configuration

if TYPE_CHECKING:
    from collections.abc import Iterator

DEFAULT_FEATURE_FLAG = "ACT_PARALLEL"

_C_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


@dataclass
class ParameterSpec:
    """A tunable integer parameter and its candidate values."""

    name: str
    values: list[int]
    macro: str = ""

    def __post_init__(self) -> None:
        if not self.macro:
            self.macro = self.name.upper()


@dataclass
class CandidateSpace:
    """Cartesian product of parameter candidate sets.

    Parameters are traversed outer-to-inner in declaration order, so the
    first declared parameter changes slowest.
    """

    parameters: list[ParameterSpec] = field(default_factory=list)
    feature_flag: str = DEFAULT_FEATURE_FLAG
    feature_enabled: bool = True

    @property
    def names(self) -> list[str]:
        """Parameter names in declaration order."""
        return [p.name for p in self.parameters]

    def __len__(self) -> int:
        if not self.parameters:
            return 0
        size = 1
        for param in self.parameters:
            size *= len(param.values)
        return size

    def candidates(self) -> Iterator[Configuration]:
        """Yield every candidate configuration in deterministic order."""
        if not self.parameters:
            return
        for combo in itertools.product(*(p.values for p in self.parameters)):
            yield Configuration(
                values=dict(zip(self.names, combo)),
                feature_enabled=self.feature_enabled,
            )

    def macro_for(self, name: str) -> str:
        """Return the header macro name for a parameter."""
        for param in self.parameters:
            if param.name == name:
                return param.macro
        msg = f"Unknown parameter: {name}"
        raise KeyError(msg)

    def contains(self, configuration: Configuration) -> bool:
        """Check that a configuration names exactly these parameters with allowed values."""
        if list(configuration.values) != self.names:
            return False
        return all(
            configuration.values[p.name] in p.values for p in self.parameters
        )

    @classmethod
    def from_dict(
        cls,
        parameters: object,
        feature_flag: str = DEFAULT_FEATURE_FLAG,
        feature_enabled: bool = True,  # noqa: FBT001, FBT002
    ) -> CandidateSpace:
        """Build a space from the ``parameters`` section of blocktune.yaml.

        Example::

            parameters:
              row_block:
                macro: ROW_BLOCK_SIZE
                values: [2, 4, 8]
        """
        if not isinstance(parameters, dict):
            msg = "'parameters' must be a mapping of name -> {values, macro}"
            raise ConfigError(msg)

        if not _C_IDENTIFIER.fullmatch(feature_flag):
            msg = f"Feature flag {feature_flag!r} is not a valid C identifier"
            raise ConfigError(msg)

        specs: list[ParameterSpec] = []
        macros: set[str] = set()
        for name, raw_spec in cast("dict[str, object]", parameters).items():
            if isinstance(raw_spec, list):
                raw_spec = {"values": raw_spec}
            if not isinstance(raw_spec, dict) or "values" not in raw_spec:
                msg = f"Parameter '{name}' must have 'values'"
                raise ConfigError(msg)
            spec = cast("dict[str, object]", raw_spec)

            values = spec["values"]
            if not isinstance(values, list) or not all(
                isinstance(v, int) and not isinstance(v, bool)
                for v in cast("list[object]", values)
            ):
                msg = f"Parameter '{name}' values must be a list of integers"
                raise ConfigError(msg)
            int_values = cast("list[int]", values)
            if len(set(int_values)) != len(int_values):
                msg = f"Parameter '{name}' has duplicate values"
                raise ConfigError(msg)

            macro = spec.get("macro", "")
            if not isinstance(macro, str):
                msg = f"Parameter '{name}' macro must be a string"
                raise ConfigError(msg)

            param = ParameterSpec(name=str(name), values=int_values, macro=macro)
            if not _C_IDENTIFIER.fullmatch(param.macro):
                msg = f"Parameter '{name}' macro {param.macro!r} is not a valid C identifier"
                raise ConfigError(msg)
            if param.macro in macros or param.macro == feature_flag:
                msg = f"Parameter '{name}' macro {param.macro!r} is already defined"
                raise ConfigError(msg)
            macros.add(param.macro)
            specs.append(param)

        return cls(
            parameters=specs,
            feature_flag=feature_flag,
            feature_enabled=feature_enabled,
        )

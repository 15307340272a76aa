# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/provisio/config/models.py

from __future__ import annotations

from typing import Any, Dict, List, Tuple, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    field_validator,
    model_validator,
)

from ..errors import DuplicateResource


# ---------------------------------------------------------------------
# Parameter values
# ---------------------------------------------------------------------
class LiteralValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: Any = None


class OutputRef(BaseModel):
    """Reads a named output of another descriptor once it has been applied."""

    model_config = ConfigDict(frozen=True)

    resource: str
    output: str
    default: Any = None

    @property
    def has_default(self) -> bool:
        # an explicit default is the alternate path when the target is excluded
        return "default" in self.model_fields_set

    def label(self) -> str:
        return f"{self.resource}.{self.output}"


class SecretRef(BaseModel):
    """Indirect pointer into an external secret store, resolved at apply time."""

    model_config = ConfigDict(frozen=True)

    store: str
    name: str

    def label(self) -> str:
        return f"{self.store}/{self.name}"


class ConfigRef(BaseModel):
    """Reads a value from the deployment configuration."""

    model_config = ConfigDict(frozen=True)

    flag: str
    default: Any = None


ParameterValue = Union[LiteralValue, OutputRef, SecretRef, ConfigRef]

_REF_KEYS = {"output", "secret", "config", "value"}


def _parse_output(raw: Any) -> OutputRef:
    if isinstance(raw, str):
        resource, sep, output = raw.partition(".")
        if not sep or not resource or not output:
            raise ValueError(f"Output reference must look like '<resource>.<output>', got {raw!r}")
        return OutputRef(resource=resource, output=output)
    if isinstance(raw, dict):
        data = dict(raw)
        if "name" in data and "output" not in data:
            data["output"] = data.pop("name")
        return OutputRef.model_validate(data)
    raise ValueError(f"Unsupported output reference: {raw!r}")


def _parse_secret(raw: Any) -> SecretRef:
    if isinstance(raw, str):
        store, sep, name = raw.partition("/")
        if not sep or not store or not name:
            raise ValueError(f"Secret reference must look like '<store>/<name>', got {raw!r}")
        return SecretRef(store=store, name=name)
    return SecretRef.model_validate(raw)


def _parse_config(raw: Any) -> ConfigRef:
    if isinstance(raw, str):
        return ConfigRef(flag=raw)
    return ConfigRef.model_validate(raw)


def parse_parameter(raw: Any) -> ParameterValue:
    """
    Turn a raw template value into a typed parameter.

    ``{output: ...}``, ``{secret: ...}`` and ``{config: ...}`` become references,
    ``{value: ...}`` wraps a literal explicitly, anything else is a literal.
    """
    if isinstance(raw, (LiteralValue, OutputRef, SecretRef, ConfigRef)):
        return raw
    if isinstance(raw, dict) and len(raw) == 1:
        (key, inner), = raw.items()
        if key == "output":
            return _parse_output(inner)
        if key == "secret":
            return _parse_secret(inner)
        if key == "config":
            return _parse_config(inner)
        if key == "value":
            return LiteralValue(value=inner)
    return LiteralValue(value=raw)


# ---------------------------------------------------------------------
# Descriptors and deployment configuration
# ---------------------------------------------------------------------
class ResourceDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(min_length=1)
    kind: str = Field(min_length=1)
    parameters: Dict[str, ParameterValue] = Field(default_factory=dict)
    depends_on: Tuple[str, ...] = Field(default=(), alias="dependsOn")
    condition: str = ""

    @field_validator("parameters", mode="before")
    @classmethod
    def _parse_parameters(cls, value: Any) -> Dict[str, ParameterValue]:
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise ValueError("parameters must be a mapping")
        return {str(k): parse_parameter(v) for k, v in value.items()}

    @field_validator("depends_on", mode="before")
    @classmethod
    def _coerce_depends_on(cls, value: Any) -> Any:
        if value is None:
            return ()
        if isinstance(value, str):
            return (value,)
        return value

    @field_validator("condition", mode="before")
    @classmethod
    def _coerce_condition(cls, value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    @property
    def idempotency_key(self) -> str:
        return f"{self.kind}/{self.id}"

    def output_refs(self) -> List[OutputRef]:
        return [p for p in self.parameters.values() if isinstance(p, OutputRef)]

    def secret_refs(self) -> List[SecretRef]:
        return [p for p in self.parameters.values() if isinstance(p, SecretRef)]

    def references(self) -> List[str]:
        """Every descriptor id this one needs, explicit or through outputs."""
        seen: Dict[str, None] = dict.fromkeys(self.depends_on)
        for ref in self.output_refs():
            seen.setdefault(ref.resource)
        return list(seen)


FlagValue = Union[StrictBool, StrictInt, StrictFloat, str]


class DeploymentConfig(BaseModel):
    """Immutable deployment-wide settings and feature flags."""

    model_config = ConfigDict(frozen=True)

    name: str = "deployment"
    environment: str = "dev"
    flags: Dict[str, FlagValue] = Field(default_factory=dict)

    def lookup(self, key: str, default: Any = None) -> Any:
        if key in self.flags:
            return self.flags[key]
        if key in ("name", "environment"):
            return getattr(self, key)
        return default

    def with_flags(self, overrides: Dict[str, FlagValue]) -> "DeploymentConfig":
        return self.model_copy(update={"flags": {**self.flags, **overrides}})


class Deployment(BaseModel):
    """The descriptor store for one run: configuration plus descriptors."""

    model_config = ConfigDict(frozen=True)

    config: DeploymentConfig = Field(default_factory=DeploymentConfig)
    resources: List[ResourceDescriptor] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_ids(self) -> "Deployment":
        seen: Dict[str, int] = {}
        for r in self.resources:
            seen[r.id] = seen.get(r.id, 0) + 1
        dupes = sorted(k for k, n in seen.items() if n > 1)
        if dupes:
            raise DuplicateResource(f"Duplicate resource ids: {', '.join(dupes)}", dupes)
        return self


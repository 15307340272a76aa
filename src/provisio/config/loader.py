# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/provisio/config/loader.py

import logging
import os
import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import yaml
from pydantic import ValidationError as PydanticValidationError

from ..errors import TemplateError
from .models import Deployment, DeploymentConfig, FlagValue

log = logging.getLogger("provisio")

# same number shapes the condition tokenizer accepts; "nan", "1e3", "1_000" stay strings
_INT = re.compile(r"-?\d+")
_FLOAT = re.compile(r"-?\d+\.\d+")


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Recursively merge *override* into *base* (mutates base).
    Only overwrites when the override value is non-empty.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            _deep_merge(base[key], value)
        else:
            if value not in (None, ""):
                base[key] = value
    return base


def _load_yaml(path: Path) -> dict:
    """Load a YAML file, expanding ${ENV_VAR} references."""
    try:
        raw = path.read_text()
    except OSError as exc:
        raise TemplateError(f"Cannot read template {path}: {exc}") from exc
    expanded = os.path.expandvars(raw)
    try:
        data = yaml.safe_load(expanded) or {}
    except yaml.YAMLError as exc:
        raise TemplateError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TemplateError(f"Expected mapping in {path}, got {type(data).__name__}")
    return data


def coerce_flag(raw: str) -> FlagValue:
    """Interpret a command-line ``key=value`` value: booleans, plain integers and decimals, else a string."""
    lowered = raw.strip().lower()
    if lowered in ("true", "yes", "on"):
        return True
    if lowered in ("false", "no", "off"):
        return False
    text = raw.strip()
    if _INT.fullmatch(text):
        return int(text)
    if _FLOAT.fullmatch(text):
        return float(text)
    return raw


def parse_overrides(items: Iterable[str]) -> Dict[str, FlagValue]:
    """Parse ``["enableVpn=false", "location=eastus2"]`` into typed flags."""
    out: Dict[str, FlagValue] = {}
    for item in items:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise TemplateError(f"Override must look like key=value, got {item!r}")
        out[key.strip()] = coerce_flag(value)
    return out


def load_deployment(
    paths: Iterable[str | Path],
    overrides: Optional[Dict[str, FlagValue]] = None,
) -> Deployment:
    """
    Load one or more template files into a validated Deployment.

    Each file may carry a ``deployment:`` section (name, environment, flags)
    and a ``resources:`` list. Deployment sections are deep-merged in file
    order; resources are concatenated. *overrides* are applied to the flags
    last, so command-line values win over every file.
    """
    settings: dict = {}
    resources: List[dict] = []
    files = [Path(p) for p in paths]
    if not files:
        raise TemplateError("No template files given")

    for path in files:
        data = _load_yaml(path)
        section = data.get("deployment") or {}
        if not isinstance(section, dict):
            raise TemplateError(f"'deployment' in {path} must be a mapping")
        _deep_merge(settings, section)

        items = data.get("resources") or []
        if not isinstance(items, list):
            raise TemplateError(f"'resources' in {path} must be a list")
        log.debug("Loaded %d resources from %s", len(items), path)
        resources.extend(items)

    try:
        config = DeploymentConfig.model_validate(settings)
        if overrides:
            config = config.with_flags(overrides)
        return Deployment.model_validate({"config": config, "resources": resources})
    except PydanticValidationError as exc:
        names = ", ".join(str(p) for p in files)
        raise TemplateError(f"Invalid templates ({names}): {exc}") from exc

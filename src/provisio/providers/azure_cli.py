# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/provisio/providers/azure_cli.py
from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import subprocess
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..errors import (
    ApplicationError,
    CallTimeout,
    PermanentError,
    SecretNotFound,
    SecretStoreUnavailable,
    TransientError,
)
from .interface import ResourceState

log = logging.getLogger("provisio")

PARAMETERS_SCHEMA = "https://schema.management.azure.com/schemas/2019-04-01/deploymentParameters.json#"

# checked before the transient markers; more specific
PERMANENT_MARKERS = (
    "AuthorizationFailed",
    "LinkedAuthorizationFailed",
    "QuotaExceeded",
    "OperationNotAllowed",
    "SkuNotAvailable",
    "InvalidTemplate",
    "InvalidTemplateDeployment",
    "InvalidParameter",
    "BadRequest",
)

TRANSIENT_MARKERS = (
    "TooManyRequests",
    "429",
    "RetryableError",
    "AnotherOperationInProgress",
    "Conflict",
    "PrincipalNotFound",
    "ResourceNotFound",
    "InternalServerError",
    "ServiceUnavailable",
    "GatewayTimeout",
    "timed out",
)

NOT_FOUND_MARKERS = ("DeploymentNotFound", "could not be found", "ResourceGroupNotFound")


def classify_error(message: str) -> ApplicationError:
    """Map az stderr to TransientError / PermanentError. Unknown errors are permanent."""
    for marker in PERMANENT_MARKERS:
        if marker in message:
            return PermanentError(message.strip())
    for marker in TRANSIENT_MARKERS:
        if marker in message:
            return TransientError(message.strip())
    return PermanentError(message.strip())


def deployment_name(prefix: str, kind: str, resource_id: str) -> str:
    """
    Azure deployment name for one idempotency key (kind/id).

    Readable part: prefix, last segment of the kind, id, sanitised to
    [-\\w._()]. A hash of the full key keeps names distinct when
    sanitising or truncation (64 chars) would make them collide.
    """
    digest = hashlib.sha256(f"{kind}/{resource_id}".encode()).hexdigest()[:10]
    short_kind = kind.rsplit("/", 1)[-1]
    readable = re.sub(r"[^-\w._()]", "-", f"{prefix}{short_kind}-{resource_id}")
    return f"{readable[:64 - len(digest) - 1]}-{digest}"


def _values(section: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {k: (v or {}).get("value") for k, v in (section or {}).items()}


class AzureCliControlPlane:
    """
    One ARM/Bicep group deployment per descriptor, driven through the `az` CLI.

    - exists():  az deployment group show     (only provisioningState=Succeeded counts)
    - apply():   az deployment group validate, then create (create-or-update, incremental mode)
    - ensure_resource_group(): az group show, az group create when missing (opt-in)
    Testable by mocking subprocess.run.
    """

    def __init__(
        self,
        resource_group: str,
        templates: Dict[str, str | Path],
        *,
        subscription: Optional[str] = None,
        name_prefix: str = "",
        timeout: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
        validate: bool = True,
    ):
        self.resource_group = resource_group
        self.validate = validate
        self.templates = {k: Path(v) for k, v in templates.items()}
        self.subscription = subscription
        self.name_prefix = name_prefix
        self.timeout = timeout
        self.env = env or {}

    # ------------------------- internal helpers -------------------------

    def _subscription(self, argv: List[str]) -> List[str]:
        if self.subscription:
            argv += ["--subscription", self.subscription]
        return argv

    def _base(self, *args: str) -> List[str]:
        return self._subscription(["az", *args, "--resource-group", self.resource_group, "--output", "json"])

    def _run(self, argv: List[str]) -> subprocess.CompletedProcess:
        log.debug("running: %s", " ".join(argv))
        try:
            return subprocess.run(
                argv,
                check=False,
                text=True,
                capture_output=True,
                env={**os.environ, **self.env} if self.env else None,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise CallTimeout(f"az timed out after {exc.timeout}s: {' '.join(argv[:4])}") from exc

    def _write_parameters(self, parameters: Dict[str, Any]) -> str:
        doc = {
            "$schema": PARAMETERS_SCHEMA,
            "contentVersion": "1.0.0.0",
            "parameters": {k: {"value": v} for k, v in parameters.items()},
        }
        with tempfile.NamedTemporaryFile("w", suffix=".parameters.json", delete=False) as tf:
            json.dump(doc, tf)
            return tf.name

    # ------------------------- resource group -------------------------

    def ensure_resource_group(self, location: str, tags: Optional[Dict[str, str]] = None) -> bool:
        """Create the resource group when it does not exist yet. Returns True if created."""
        cp = self._run(self._subscription(["az", "group", "show", "--name", self.resource_group, "--output", "json"]))
        if cp.returncode == 0:
            log.debug("resource group %s already exists", self.resource_group)
            return False
        stderr = cp.stderr or ""
        if not any(m in stderr for m in NOT_FOUND_MARKERS):
            raise classify_error(stderr or f"az group show failed (rc={cp.returncode})")

        argv = ["az", "group", "create", "--name", self.resource_group, "--location", location, "--output", "json"]
        if tags:
            argv += ["--tags", *(f"{k}={v}" for k, v in sorted(tags.items()))]
        cp = self._run(self._subscription(argv))
        if cp.returncode != 0:
            raise classify_error(cp.stderr or f"az group create failed (rc={cp.returncode})")
        log.info("created resource group %s in %s", self.resource_group, location)
        return True

    # ------------------------- ControlPlane -------------------------

    def exists(self, kind: str, resource_id: str) -> Optional[ResourceState]:
        name = deployment_name(self.name_prefix, kind, resource_id)
        cp = self._run(self._base("deployment", "group", "show", "--name", name))
        if cp.returncode != 0:
            stderr = cp.stderr or ""
            if any(m in stderr for m in NOT_FOUND_MARKERS):
                return None
            raise classify_error(stderr or f"az deployment group show failed (rc={cp.returncode})")

        props = (json.loads(cp.stdout or "{}") or {}).get("properties") or {}
        if props.get("provisioningState") != "Succeeded":
            log.debug("%s: deployment %s is %s", resource_id, name, props.get("provisioningState"))
            return None
        return ResourceState(
            parameters=_values(props.get("parameters")),
            outputs=_values(props.get("outputs")),
        )

    def apply(self, kind: str, resource_id: str, parameters: Dict[str, Any]) -> Dict[str, Any]:
        template = self.templates.get(kind)
        if template is None:
            raise PermanentError(f"No template registered for kind '{kind}'")

        name = deployment_name(self.name_prefix, kind, resource_id)
        params_file = self._write_parameters(parameters)
        source = ["--template-file", str(template), "--parameters", f"@{params_file}"]
        try:
            if self.validate:
                check = self._run(self._base("deployment", "group", "validate", "--name", name, *source))
                if check.returncode != 0:
                    # validation failures are never retried
                    detail = (check.stderr or "").strip() or f"rc={check.returncode}"
                    raise PermanentError(f"Validation of {kind}/{resource_id} failed: {detail}")
            cp = self._run(self._base("deployment", "group", "create", "--name", name, *source))
        finally:
            os.unlink(params_file)

        if cp.returncode != 0:
            raise classify_error(cp.stderr or f"az deployment group create failed (rc={cp.returncode})")
        props = (json.loads(cp.stdout or "{}") or {}).get("properties") or {}
        return _values(props.get("outputs"))


class KeyVaultCliSecretStore:
    """Reads Key Vault secrets with `az keyvault secret show`; store = vault name."""

    def __init__(self, *, timeout: Optional[float] = None, env: Optional[Dict[str, str]] = None):
        self.timeout = timeout
        self.env = env or {}

    def get(self, store: str, name: str) -> str:
        argv = [
            "az", "keyvault", "secret", "show",
            "--vault-name", store,
            "--name", name,
            "--query", "value",
            "--output", "tsv",
        ]
        try:
            cp = subprocess.run(
                argv,
                check=False,
                text=True,
                capture_output=True,
                env={**os.environ, **self.env} if self.env else None,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise SecretStoreUnavailable(f"Key Vault '{store}' timed out after {exc.timeout}s") from exc

        if cp.returncode != 0:
            stderr = (cp.stderr or "").strip()
            if "SecretNotFound" in stderr or "was not found" in stderr:
                raise SecretNotFound(store, name)
            raise SecretStoreUnavailable(f"Key Vault '{store}' unavailable: {stderr or cp.returncode}")
        return (cp.stdout or "").rstrip("\n")

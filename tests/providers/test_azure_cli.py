import json
import subprocess
from pathlib import Path

import pytest

from provisio.errors import (
    CallTimeout,
    PermanentError,
    SecretNotFound,
    SecretStoreUnavailable,
    TransientError,
)
from provisio.providers.azure_cli import (
    AzureCliControlPlane,
    KeyVaultCliSecretStore,
    classify_error,
    deployment_name,
)


class DummyCP:
    def __init__(self, rc=0, out="", err=""):
        self.returncode = rc
        self.stdout = out
        self.stderr = err


def _deployment_json(state="Succeeded", parameters=None, outputs=None):
    return json.dumps({
        "name": "KV",
        "properties": {
            "provisioningState": state,
            "parameters": {k: {"type": "String", "value": v} for k, v in (parameters or {}).items()},
            "outputs": {k: {"type": "String", "value": v} for k, v in (outputs or {}).items()},
        },
    })


def test_exists_builds_expected_argv(monkeypatch):
    calls = []

    def fake_run(argv, check=False, text=False, capture_output=False, env=None, timeout=None):
        calls.append(argv)
        return DummyCP(0, _deployment_json(parameters={"sku": "standard"}, outputs={"vaultUri": "https://kv/"}))

    monkeypatch.setattr(subprocess, "run", fake_run)

    cp = AzureCliControlPlane("rg-shop", {}, subscription="sub-1", name_prefix="shop-")
    state = cp.exists("Microsoft.KeyVault/vaults", "KV")

    assert calls[0][:5] == ["az", "deployment", "group", "show", "--name"]
    assert calls[0][5] == deployment_name("shop-", "Microsoft.KeyVault/vaults", "KV")
    assert calls[0][5].startswith("shop-vaults-KV-")
    assert calls[0][6:] == ["--resource-group", "rg-shop", "--output", "json", "--subscription", "sub-1"]
    assert state.parameters == {"sku": "standard"}
    assert state.outputs == {"vaultUri": "https://kv/"}


def test_exists_returns_none_when_missing_or_not_succeeded(monkeypatch):
    responses = [
        DummyCP(3, err="ERROR: (DeploymentNotFound) Deployment 'KV' could not be found."),
        DummyCP(0, _deployment_json(state="Failed")),
    ]
    monkeypatch.setattr(subprocess, "run", lambda argv, **kw: responses.pop(0))

    cp = AzureCliControlPlane("rg-shop", {})
    assert cp.exists("k", "KV") is None
    assert cp.exists("k", "KV") is None


def test_exists_classifies_other_errors(monkeypatch):
    monkeypatch.setattr(
        subprocess, "run", lambda argv, **kw: DummyCP(1, err="ERROR: (TooManyRequests) slow down")
    )
    with pytest.raises(TransientError):
        AzureCliControlPlane("rg-shop", {}).exists("k", "KV")


def test_apply_validates_then_creates_and_cleans_up(monkeypatch, tmp_path: Path):
    template = tmp_path / "keyvault.bicep"
    template.write_text("// bicep")
    calls, docs, files = [], [], []

    def fake_run(argv, check=False, text=False, capture_output=False, env=None, timeout=None):
        calls.append(argv)
        params_file = argv[argv.index("--parameters") + 1].lstrip("@")
        files.append(params_file)
        docs.append(json.loads(Path(params_file).read_text()))
        return DummyCP(0, _deployment_json(outputs={"vaultUri": "https://kv/"}))

    monkeypatch.setattr(subprocess, "run", fake_run)

    cp = AzureCliControlPlane("rg-shop", {"Microsoft.KeyVault/vaults": template})
    outputs = cp.apply("Microsoft.KeyVault/vaults", "KV", {"sku": "standard", "enabled": True})

    assert outputs == {"vaultUri": "https://kv/"}
    assert [c[1:4] for c in calls] == [["deployment", "group", "validate"], ["deployment", "group", "create"]]
    assert calls[1][calls[1].index("--template-file") + 1] == str(template)
    assert docs[1]["parameters"] == {"sku": {"value": "standard"}, "enabled": {"value": True}}
    assert not Path(files[0]).exists()


def test_failed_validation_is_permanent_and_skips_create(monkeypatch, tmp_path: Path):
    template = tmp_path / "t.bicep"
    template.write_text("")
    calls = []

    def fake_run(argv, check=False, text=False, capture_output=False, env=None, timeout=None):
        calls.append(argv)
        return DummyCP(1, err="ERROR: (ServiceUnavailable) InvalidTemplateDeployment: bad sku")

    monkeypatch.setattr(subprocess, "run", fake_run)
    with pytest.raises(PermanentError, match="Validation of k/X failed"):
        AzureCliControlPlane("rg-shop", {"k": template}).apply("k", "X", {})
    assert [c[3] for c in calls] == ["validate"]


def test_validation_can_be_switched_off(monkeypatch, tmp_path: Path):
    template = tmp_path / "t.bicep"
    template.write_text("")
    calls = []

    def fake_run(argv, check=False, text=False, capture_output=False, env=None, timeout=None):
        calls.append(argv)
        return DummyCP(0, "{}")

    monkeypatch.setattr(subprocess, "run", fake_run)
    AzureCliControlPlane("rg-shop", {"k": template}, validate=False).apply("k", "X", {})
    assert [c[3] for c in calls] == ["create"]


def test_ensure_resource_group_creates_when_missing(monkeypatch):
    calls = []
    responses = [
        DummyCP(3, err="ERROR: (ResourceGroupNotFound) Resource group 'rg-shop' could not be found."),
        DummyCP(0, '{"name": "rg-shop"}'),
    ]

    def fake_run(argv, check=False, text=False, capture_output=False, env=None, timeout=None):
        calls.append(argv)
        return responses.pop(0)

    monkeypatch.setattr(subprocess, "run", fake_run)
    cp = AzureCliControlPlane("rg-shop", {}, subscription="sub-1")
    assert cp.ensure_resource_group("eastus", tags={"ManagedBy": "provisio"}) is True

    assert calls[0][:5] == ["az", "group", "show", "--name", "rg-shop"]
    assert calls[1][:5] == ["az", "group", "create", "--name", "rg-shop"]
    assert calls[1][calls[1].index("--location") + 1] == "eastus"
    assert "ManagedBy=provisio" in calls[1]
    assert calls[1][-2:] == ["--subscription", "sub-1"]


def test_ensure_resource_group_keeps_existing_and_surfaces_errors(monkeypatch):
    responses = [DummyCP(0, '{"name": "rg-shop"}'), DummyCP(1, err="ERROR: (AuthorizationFailed) no")]
    monkeypatch.setattr(subprocess, "run", lambda argv, **kw: responses.pop(0))
    cp = AzureCliControlPlane("rg-shop", {})
    assert cp.ensure_resource_group("eastus") is False
    with pytest.raises(PermanentError):
        cp.ensure_resource_group("eastus")



def test_apply_without_template_is_permanent(monkeypatch):
    monkeypatch.setattr(subprocess, "run", lambda *a, **kw: pytest.fail("az must not run"))
    with pytest.raises(PermanentError):
        AzureCliControlPlane("rg-shop", {}).apply("Unknown/kind", "X", {})


def test_apply_timeout_is_call_timeout(monkeypatch, tmp_path: Path):
    template = tmp_path / "t.bicep"
    template.write_text("")

    def fake_run(argv, **kw):
        raise subprocess.TimeoutExpired(argv, kw.get("timeout"))

    monkeypatch.setattr(subprocess, "run", fake_run)
    cp = AzureCliControlPlane("rg-shop", {"k": template}, timeout=5)
    with pytest.raises(CallTimeout):
        cp.apply("k", "X", {})


@pytest.mark.parametrize(
    "stderr, expected",
    [
        ("ERROR: (AuthorizationFailed) The client does not have authorization", PermanentError),
        ("ERROR: (QuotaExceeded) Operation could not be completed", PermanentError),
        ("ERROR: (Conflict) AnotherOperationInProgress", TransientError),
        ("ERROR: (PrincipalNotFound) Principal abc does not exist", TransientError),
        ("ERROR: something nobody has seen before", PermanentError),
    ],
)
def test_classify_error(stderr, expected):
    assert type(classify_error(stderr)) is expected


def test_deployment_name_follows_kind_and_id():
    name = deployment_name("shop-", "Microsoft.Web/sites", "app/web api")
    assert name.startswith("shop-sites-app-web-api-")
    assert len(deployment_name("", "k", "x" * 100)) == 64

    assert deployment_name("", "Microsoft.Cache/redis", "shop") != deployment_name("", "Microsoft.KeyVault/vaults", "shop")
    assert deployment_name("", "k", "db main") != deployment_name("", "k", "db-main")
    long_a, long_b = "x" * 80 + "a", "x" * 80 + "b"
    assert deployment_name("", "k", long_a) != deployment_name("", "k", long_b)
    assert deployment_name("", "k", "db") == deployment_name("", "k", "db")


def test_exists_queries_distinct_deployments_per_kind(monkeypatch):
    names = []

    def fake_run(argv, check=False, text=False, capture_output=False, env=None, timeout=None):
        names.append(argv[argv.index("--name") + 1])
        return DummyCP(3, err="ERROR: (DeploymentNotFound) could not be found.")

    monkeypatch.setattr(subprocess, "run", fake_run)
    cp = AzureCliControlPlane("rg-shop", {})
    cp.exists("Microsoft.Cache/redis", "shop")
    cp.exists("Microsoft.KeyVault/vaults", "shop")
    assert names[0] != names[1]


def test_keyvault_get(monkeypatch):
    calls = []

    def fake_run(argv, check=False, text=False, capture_output=False, env=None, timeout=None):
        calls.append(argv)
        return DummyCP(0, "hunter2\n")

    monkeypatch.setattr(subprocess, "run", fake_run)
    assert KeyVaultCliSecretStore().get("kv-shop", "sql-admin") == "hunter2"
    assert calls[0][:4] == ["az", "keyvault", "secret", "show"]
    assert calls[0][calls[0].index("--vault-name") + 1] == "kv-shop"


def test_keyvault_errors(monkeypatch):
    responses = [
        DummyCP(1, err="ERROR: (SecretNotFound) A secret with (name/id) x was not found"),
        DummyCP(1, err="ERROR: Failed to establish a new connection"),
    ]
    monkeypatch.setattr(subprocess, "run", lambda argv, **kw: responses.pop(0))
    store = KeyVaultCliSecretStore()
    with pytest.raises(SecretNotFound):
        store.get("kv-shop", "x")
    with pytest.raises(SecretStoreUnavailable):
        store.get("kv-shop", "x")

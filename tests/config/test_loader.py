from pathlib import Path
import textwrap

import pytest

from provisio.config.loader import coerce_flag, load_deployment, parse_overrides
from provisio.config.models import ConfigRef, LiteralValue, OutputRef, SecretRef
from provisio.errors import DuplicateResource, TemplateError


def _write(tmp_path: Path, name: str, text: str) -> Path:
    f = tmp_path / name
    f.write_text(textwrap.dedent(text))
    return f


def test_load_deployment_parses_parameters(tmp_path: Path):
    f = _write(tmp_path, "main.yaml", """
        deployment:
          name: shop
          environment: prod
          flags:
            enableCache: true
        resources:
          - id: KV
            kind: Microsoft.KeyVault/vaults
            parameters:
              sku: standard
          - id: DB
            kind: Microsoft.Sql/servers
            dependsOn: [KV]
            parameters:
              adminPassword: {secret: kv-shop/sql-admin}
              vaultUri: {output: KV.vaultUri}
              location: {config: {flag: location, default: eastus}}
    """)
    dep = load_deployment([f])
    assert dep.config.name == "shop"
    assert dep.config.environment == "prod"
    assert dep.config.flags == {"enableCache": True}

    db = next(r for r in dep.resources if r.id == "DB")
    assert db.depends_on == ("KV",)
    assert db.parameters["adminPassword"] == SecretRef(store="kv-shop", name="sql-admin")
    assert db.parameters["vaultUri"] == OutputRef(resource="KV", output="vaultUri")
    assert db.parameters["location"] == ConfigRef(flag="location", default="eastus")
    assert dep.resources[0].parameters["sku"] == LiteralValue(value="standard")


def test_later_files_merge_and_overrides_win(tmp_path: Path):
    a = _write(tmp_path, "a.yaml", """
        deployment:
          name: shop
          flags: {enableVpn: true, location: westeurope}
        resources:
          - {id: A, kind: k}
    """)
    b = _write(tmp_path, "b.yaml", """
        deployment:
          flags: {location: eastus}
        resources:
          - {id: B, kind: k}
    """)
    dep = load_deployment([a, b], parse_overrides(["enableVpn=false"]))
    assert dep.config.flags == {"enableVpn": False, "location": "eastus"}
    assert [r.id for r in dep.resources] == ["A", "B"]


def test_env_vars_are_expanded(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("PROVISIO_TEST_RG", "rg-shop")
    f = _write(tmp_path, "env.yaml", """
        deployment:
          flags: {resourceGroup: "${PROVISIO_TEST_RG}"}
    """)
    assert load_deployment([f]).config.lookup("resourceGroup") == "rg-shop"


def test_duplicate_ids_are_rejected(tmp_path: Path):
    f = _write(tmp_path, "dup.yaml", """
        resources:
          - {id: A, kind: k}
          - {id: A, kind: other}
    """)
    with pytest.raises(DuplicateResource) as ei:
        load_deployment([f])
    assert ei.value.ids == ["A"]


def test_bad_yaml_and_bad_shape_raise_template_error(tmp_path: Path):
    broken = _write(tmp_path, "broken.yaml", "resources: [\n")
    with pytest.raises(TemplateError):
        load_deployment([broken])

    not_a_list = _write(tmp_path, "shape.yaml", "resources: {id: A}\n")
    with pytest.raises(TemplateError):
        load_deployment([not_a_list])

    missing_kind = _write(tmp_path, "nokind.yaml", "resources:\n  - id: A\n")
    with pytest.raises(TemplateError):
        load_deployment([missing_kind])


def test_overrides_are_typed():
    assert coerce_flag("true") is True
    assert coerce_flag("off") is False
    assert coerce_flag("3") == 3
    assert coerce_flag("1.5") == 1.5
    assert coerce_flag("eastus") == "eastus"
    with pytest.raises(TemplateError):
        parse_overrides(["novalue"])


@pytest.mark.parametrize("raw", ["nan", "infinity", "-inf", "1e3", "1_000", ".5"])
def test_number_like_words_stay_strings(raw):
    assert coerce_flag(raw) == raw
    assert parse_overrides([f"region={raw}"]) == {"region": raw}


def test_signed_numbers_are_coerced():
    assert coerce_flag("-2") == -2
    assert coerce_flag("-0.5") == -0.5

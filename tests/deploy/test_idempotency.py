import pytest

from provisio.config.models import ResourceDescriptor
from provisio.deploy.idempotency import (
    DriftPolicy,
    Existence,
    IdempotencyChecker,
    diverging_keys,
)
from provisio.errors import ConfigurationDrift
from provisio.providers.memory import InMemoryControlPlane

DB = ResourceDescriptor(id="DB", kind="Microsoft.Sql/servers")


def test_absent_when_control_plane_knows_nothing():
    cp = InMemoryControlPlane()
    check = IdempotencyChecker(cp).check(DB, {"sku": "S1"})
    assert check.outcome is Existence.ABSENT
    assert cp.exists_calls == [("Microsoft.Sql/servers", "DB")]


def test_equivalent_returns_observed_outputs():
    cp = InMemoryControlPlane()
    cp.seed("Microsoft.Sql/servers", "DB", {"sku": "S1"}, {"fqdn": "db.example"})
    check = IdempotencyChecker(cp).check(DB, {"sku": "S1"})
    assert check.outcome is Existence.EQUIVALENT
    assert check.state.outputs == {"fqdn": "db.example"}


def test_drift_updates_by_default():
    cp = InMemoryControlPlane()
    cp.seed("Microsoft.Sql/servers", "DB", {"sku": "S0"})
    check = IdempotencyChecker(cp).check(DB, {"sku": "S1"})
    assert check.outcome is Existence.DRIFTED
    assert check.drifted == ["sku"]


def test_drift_fails_in_strict_mode():
    cp = InMemoryControlPlane()
    cp.seed("Microsoft.Sql/servers", "DB", {"sku": "S0"})
    with pytest.raises(ConfigurationDrift) as ei:
        IdempotencyChecker(cp, policy=DriftPolicy.STRICT).check(DB, {"sku": "S1"})
    assert ei.value.keys == ["sku"]


def test_unobservable_secret_keys_are_not_drift():
    desired = {"sku": "S1", "adminPassword": "hunter2"}
    assert diverging_keys(desired, {"sku": "S1"}, ["adminPassword"]) == []
    assert diverging_keys(desired, {"sku": "S1", "adminPassword": None}, ["adminPassword"]) == []
    assert diverging_keys(desired, {"sku": "S1"}) == ["adminPassword"]
    assert diverging_keys(desired, {"sku": "S1", "adminPassword": "old"}, ["adminPassword"]) == ["adminPassword"]


def test_extra_observed_keys_are_ignored():
    assert diverging_keys({"sku": "S1"}, {"sku": "S1", "location": "eastus"}) == []

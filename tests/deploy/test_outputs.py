import pytest

from provisio.config.models import OutputRef
from provisio.deploy.outputs import OutputStore
from provisio.errors import MissingOutput, SchedulerInvariantViolated


def test_publish_once_and_read():
    store = OutputStore()
    frozen = store.publish("KV", {"vaultUri": "https://kv.example/"})
    assert store.read(OutputRef(resource="KV", output="vaultUri")) == "https://kv.example/"
    with pytest.raises(TypeError):
        frozen["vaultUri"] = "other"
    with pytest.raises(SchedulerInvariantViolated):
        store.publish("KV", {})


def test_reading_unpublished_resource_is_an_invariant_violation():
    with pytest.raises(SchedulerInvariantViolated) as ei:
        OutputStore().read(OutputRef(resource="DB", output="fqdn"))
    assert ei.value.ids == ["DB"]


def test_missing_output_falls_back_to_default():
    store = OutputStore()
    store.publish("DB", {})
    assert store.read(OutputRef(resource="DB", output="fqdn", default="localhost")) == "localhost"
    with pytest.raises(MissingOutput):
        store.read(OutputRef(resource="DB", output="fqdn"))
    assert dict(store.outputs_of("DB")) == {}

import logging

import pytest

from provisio.logging.log import LOG_DIR_ENV, init_logging


@pytest.fixture(autouse=True)
def _reset_logger():
    yield
    logger = logging.getLogger("provisio")
    for h in list(logger.handlers):
        h.close()
    logger.handlers.clear()
    logger.propagate = True


def test_init_logging_writes_per_run_file(tmp_path):
    logger, run_id, log_path = init_logging(
        base_dir=tmp_path, deployment="shop prod", run_id="run-1", console=False
    )
    logger.debug("resolving %s", "KV")
    for h in logger.handlers:
        h.flush()

    assert run_id == "run-1"
    assert log_path.parent == tmp_path
    assert log_path.name.startswith("shop_prod-") and log_path.name.endswith("-run-1.log")
    text = log_path.read_text()
    assert "resolving KV" in text
    assert "| DEBUG   |" in text


def test_reinit_replaces_handlers_and_honours_env(tmp_path, monkeypatch):
    monkeypatch.setenv(LOG_DIR_ENV, str(tmp_path / "from-env"))
    init_logging(console=False)
    logger, _, log_path = init_logging()
    assert log_path.parent == tmp_path / "from-env"
    assert len(logger.handlers) == 2
    assert logger.propagate is False

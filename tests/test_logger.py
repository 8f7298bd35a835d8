import json
import logging

import pytest

from focused_crawler.utils.config import LoggingConfig
from focused_crawler.utils.logger import JSONFormatter, get_crawler_logger, setup_logging


@pytest.fixture()
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_setup_logging_writes_log_files(tmp_path, restore_root_logger):
    log_file = tmp_path / "logs" / "crawler.log"
    setup_logging(LoggingConfig(level="DEBUG", file=str(log_file)))

    logging.getLogger("focused_crawler.test").debug("debug line")
    logging.getLogger("focused_crawler.test").error("error line")
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert "debug line" in log_file.read_text(encoding="utf-8")
    assert "error line" in (tmp_path / "logs" / "errors.log").read_text(encoding="utf-8")
    assert logging.getLogger("aiohttp").level == logging.WARNING


def test_worker_logger_prefixes_and_tags_records(caplog):
    logger = get_crawler_logger("focused_crawler.worker-test", worker_id="worker-3")

    with caplog.at_level(logging.INFO, logger="focused_crawler.worker-test"):
        logger.info("Crawling page")

    record = caplog.records[-1]
    assert record.getMessage() == "[worker-3] Crawling page"
    assert record.worker_id == "worker-3"


def test_json_formatter_includes_worker_context():
    record = logging.LogRecord("focused_crawler", logging.INFO, __file__, 1, "hello", None, None)
    record.worker_id = "worker-0"

    entry = json.loads(JSONFormatter().format(record))

    assert entry["message"] == "hello"
    assert entry["level"] == "INFO"
    assert entry["worker_id"] == "worker-0"

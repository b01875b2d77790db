# tests/test_logger.py
import json

from wayfinder.logger import NULL_LOGGER, Logger, format_line


def test_log_file_gets_session_header_and_lines(tmp_path):
    path = tmp_path / "wayfinder.log"
    logger = Logger(log_path=str(path), echo=False)
    logger.log("Committed network change", {"version": 2, "roads": 1})
    logger.close()
    logger.close()

    text = path.read_text()
    assert "Wayfinder Log - " in text
    line = text.strip().splitlines()[-1]
    assert line.startswith("[")
    message, data = line.split("] ", 1)[1].split(" | ")
    assert message == "Committed network change"
    assert json.loads(data) == {"version": 2, "roads": 1}


def test_log_file_is_appended_per_session(tmp_path):
    path = tmp_path / "wayfinder.log"
    for session in range(2):
        logger = Logger(log_path=str(path), echo=False)
        logger.log(f"session {session}")
        logger.close()

    text = path.read_text()
    assert text.count("Wayfinder Log - ") == 2
    assert "session 0" in text and "session 1" in text


def test_callback_receives_message_and_data():
    seen = []
    logger = Logger(callback=lambda message, data: seen.append((message, data)), echo=False)
    logger.log("Route synthesized", {"waypoints": 6})
    logger.log("No data")

    assert seen == [("Route synthesized", {"waypoints": 6}), ("No data", None)]


def test_echo_prints_lines(capsys):
    Logger().log("Guest view updated", {"version": 4})
    out = capsys.readouterr().out
    assert "Guest view updated | {\"version\": 4}" in out

    Logger(echo=False).log("quiet")
    NULL_LOGGER.log("quiet")
    assert capsys.readouterr().out == ""


def test_unserializable_data_is_stringified(capsys):
    class Thing:
        def __str__(self):
            return "thing"

    Logger().log("Odd data", {"value": Thing()})
    assert '"value": "thing"' in capsys.readouterr().out


def test_context_manager_closes_file(tmp_path):
    path = tmp_path / "wayfinder.log"
    with Logger(log_path=str(path), echo=False) as logger:
        logger.log("inside")
    assert logger.file is None
    logger.log("after close")

    text = path.read_text()
    assert "inside" in text
    assert "after close" not in text


def test_format_line():
    line = format_line("Store poll failed", {"error": "locked"})
    assert line.endswith('] Store poll failed | {"error": "locked"}')
    assert format_line("plain").endswith("] plain")

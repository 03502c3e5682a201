"""
Command-line entry point and logging setup.
"""

import json
import logging

import pytest

from gatewars.cli import main, parse_pairs
from gatewars.infra.logging_setup import JSONFormatter, configure_logging

from conftest import default_research


def test_parse_pairs():
    assert parse_pairs(["hatak=3", "f302=10"], "attacker") == {"hatak": 3, "f302": 10}
    assert parse_pairs(None, "attacker") == {}


@pytest.mark.parametrize("raw", ["hatak", "=3", "hatak=many"])
def test_parse_pairs_rejects_bad_input(raw):
    import argparse

    with pytest.raises(argparse.ArgumentTypeError):
        parse_pairs([raw], "attacker")


def test_simulate_prints_report(capsys):
    code = main(["simulate", "--attacker", "hatak=20", "--defender", "f302=5", "--seed", "3"])
    assert code == 0
    report = json.loads(capsys.readouterr().out)
    assert report["winner"] == "attacker"
    assert 0 <= report["defender_loss_percent"] <= 100


def test_simulate_is_repeatable_with_seed(capsys):
    args = ["simulate", "--attacker", "bc304=2", "--defender", "hatak=1", "--seed", "11"]
    main(args)
    first = capsys.readouterr().out
    main(args)
    assert capsys.readouterr().out == first


def test_simulate_with_research_file(tmp_path, capsys):
    path = tmp_path / "research.json"
    path.write_text(json.dumps(default_research()), encoding="utf-8")
    code = main(
        [
            "simulate",
            "--attacker", "f302=10",
            "--research-file", str(path),
            "--attacker-level", "weapons_research=0",
            "--seed", "1",
        ]
    )
    assert code == 0
    report = json.loads(capsys.readouterr().out)
    assert report["attacker"]["attack"] == pytest.approx(105.0)


def test_bad_pair_returns_error_code(capsys):
    assert main(["simulate", "--attacker", "hatak"]) == 2


def test_ships_lists_catalog(capsys):
    assert main(["ships"]) == 0
    assert "aurora" in json.loads(capsys.readouterr().out)


def test_configure_logging_replaces_its_own_handler():
    root = logging.getLogger()
    first = configure_logging("debug")
    second = configure_logging("warning", json_output=True)
    try:
        assert first not in root.handlers
        assert second in root.handlers
        assert isinstance(second.formatter, JSONFormatter)
        assert root.level == logging.WARNING
    finally:
        root.removeHandler(second)


def test_json_formatter_emits_one_object():
    record = logging.LogRecord("gatewars.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
    payload = json.loads(JSONFormatter().format(record))
    assert payload["msg"] == "hello world"
    assert payload["level"] == "INFO"

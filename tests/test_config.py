"""Tests for config loading and the CLI driver."""

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import io
import json

import pytest

from pii_anonymizer import ManagerConfig, SessionManager, create_manager, load_config, load_from_yaml
from pii_anonymizer import cli


# ── Config ───────────────────────────────────────────────────────────

def test_defaults():
    config = load_config({}, environ={})
    assert config == ManagerConfig()
    assert config.auto_download is True


def test_nested_section():
    config = load_config({
        "pii_anonymizer": {
            "language": "de",
            "score_threshold": 0.5,
            "ner": {"model": "de_core_news_sm", "auto_download": "false", "entities": ["PERSON"]},
            "skip_types": ["DATE_TIME"],
            "allow_list": ["safe@example.com"],
            "proxy": {"port": 9000},
            "log_level": "debug",
        }
    }, environ={})
    assert config.language == "de"
    assert config.score_threshold == 0.5
    assert config.ner_model == "de_core_news_sm"
    assert config.ner_entities == ["PERSON"]
    assert config.auto_download is False
    assert config.skip_types == {"DATE_TIME"}
    assert config.allow_list == {"safe@example.com"}
    assert config.proxy_port == 9000
    assert config.log_level == "DEBUG"


def test_env_overrides():
    config = load_config({"language": "en"}, environ={
        "PII_ANONYMIZER_LANGUAGE": "fr",
        "PII_ANONYMIZER_THRESHOLD": "0.7",
        "PII_ANONYMIZER_AUTO_DOWNLOAD": "0",
        "PII_ANONYMIZER_PROXY_PORT": "",
    })
    assert config.language == "fr"
    assert config.score_threshold == 0.7
    assert config.auto_download is False
    assert config.proxy_port == 18792


def test_semantic_setting():
    assert load_config({"semantic": {"enabled": False}}, environ={}).semantic is False
    assert load_config({"semantic": "off"}, environ={}).semantic is False
    assert load_config({"semantic": None}, environ={}).semantic is True
    assert load_config({}, environ={"PII_ANONYMIZER_SEMANTIC": "no"}).semantic is False


def test_load_from_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "pii_anonymizer:\n"
        "  skip_types:\n"
        "    - IP_ADDRESS\n"
        "  ner:\n"
        "    auto_download: true\n",
        encoding="utf-8",
    )
    config = load_from_yaml(path, environ={})
    assert config.skip_types == {"IP_ADDRESS"}
    assert config.auto_download is True


def test_create_manager_from_dict():
    manager = create_manager({"allow_list": ["a@x.com"]})
    assert isinstance(manager, SessionManager)
    assert manager.config.allow_list == {"a@x.com"}


# ── CLI ──────────────────────────────────────────────────────────────

def _run_cli(monkeypatch, capsys, argv, stdin):
    for name in list(os.environ):
        if name.startswith("PII_ANONYMIZER_"):
            monkeypatch.delenv(name)
    monkeypatch.setattr(sys, "stdin", io.StringIO(stdin))
    cli.main(argv)
    return json.loads(capsys.readouterr().out)


def test_cli_anonymize(monkeypatch, capsys):
    out = _run_cli(monkeypatch, capsys, ["anonymize"], "Contact John Smith at john@example.com")
    assert out["text"] == "Contact John Smith at «EMAIL_ADDRESS_001»"
    assert out["entity_count"] == 1
    assert out["stats"] == {"total_entities": 1, "counts_by_type": {"EMAIL_ADDRESS": 1}}
    assert out["mode"] == "regex_only"


def test_cli_roundtrip(monkeypatch, capsys):
    text = "SSN 123-45-6789 for jane@doe.org"
    out = _run_cli(monkeypatch, capsys, ["roundtrip"], text)
    assert out["restored"] == text
    assert out["matches"] is True


def test_cli_allow_list(monkeypatch, capsys):
    out = _run_cli(monkeypatch, capsys, ["--allow-list", "jane@doe.org", "anonymize"], "hi jane@doe.org")
    assert out["text"] == "hi jane@doe.org"
    assert out["entity_count"] == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

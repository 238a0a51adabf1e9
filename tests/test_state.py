"""Tests for the observable status and the mode transition table."""

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import pytest

from pii_anonymizer.state import ObservableStatus, StatusSnapshot, transition_for
from pii_anonymizer.types import DetectorMode, InitState


def test_subscribe_replays_current_snapshot():
    status = ObservableStatus()
    seen = []
    status.subscribe(seen.append)
    assert seen == [StatusSnapshot()]


def test_update_notifies_only_on_change():
    status = ObservableStatus()
    seen = []
    status.subscribe(seen.append, replay=False)
    status.update(status_text="Ready", init_state=InitState.READY)
    status.update(status_text="Ready")
    assert [s.status_text for s in seen] == ["Ready"]


def test_unsubscribe():
    status = ObservableStatus()
    seen = []
    unsubscribe = status.subscribe(seen.append, replay=False)
    unsubscribe()
    unsubscribe()
    status.update(status_text="Ready")
    assert seen == []


def test_broken_listener_does_not_stop_others(caplog):
    status = ObservableStatus()
    seen = []

    def broken(snapshot):
        raise RuntimeError("boom")

    status.subscribe(broken, replay=False)
    status.subscribe(seen.append, replay=False)
    status.update(ner_loading=True)
    assert seen[0].ner_loading
    assert "Status listener failed" in caplog.text


def test_reset():
    status = ObservableStatus()
    status.update(init_state=InitState.ERROR, last_error="x", download_progress="model: 50%")
    status.reset()
    assert status.snapshot == StatusSnapshot()


def test_transitions():
    enable = transition_for(DetectorMode.REGEX_PLUS_NER)
    assert enable.fallback is DetectorMode.REGEX_ONLY
    assert enable.ner_loading
    disable = transition_for(DetectorMode.DISABLED)
    assert disable.target is DetectorMode.REGEX_ONLY
    assert disable.fallback is None
    assert disable.failed_status == "Error disabling NER"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

from policy_controller.policy_engine.logger import log_event


def test_log_event_appends_redacted_line(tmp_path, monkeypatch):
    log_path = tmp_path / "nested" / "policy-engine.log"
    monkeypatch.setenv("POLICY_ENGINE_LOG_PATH", str(log_path))

    log_event("cluster", "read token abc.def with Authorization=secret123")
    log_event("cluster", "second\nline")

    lines = log_path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    assert "[cluster]" in lines[0]
    assert "abc.def" not in lines[0]
    assert "secret123" not in lines[0]
    assert lines[1].endswith("[cluster] second line")


def test_log_event_ignores_unwritable_path(tmp_path, monkeypatch):
    blocker = tmp_path / "file"
    blocker.write_text("", encoding="utf-8")
    monkeypatch.setenv("POLICY_ENGINE_LOG_PATH", str(blocker / "sub" / "policy-engine.log"))

    log_event("cluster", "dropped")

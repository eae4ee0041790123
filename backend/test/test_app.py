"""릴레이 서버 앱 엔드포인트 및 로그 정리 테스트."""

import importlib
import os
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def app_module(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    import app
    return importlib.reload(app)


def test_root_and_ice_servers(app_module, monkeypatch):
    import routes.deps
    monkeypatch.setattr(routes.deps, "ACCESS_PASSWORD", "")

    with TestClient(app_module.app) as client:
        assert client.get("/").json()["status"] == "ok"
        ice_servers = client.get("/api/turn-credentials").json()

    assert {"urls": "stun:stun.l.google.com:19302"} in ice_servers


def test_cleanup_old_logs(app_module, tmp_path):
    log_dir = tmp_path / "old_logs"
    log_dir.mkdir()
    old = log_dir / f"server_{(datetime.now() - timedelta(days=90)).strftime('%Y%m%d')}.log"
    recent = log_dir / f"server_{datetime.now().strftime('%Y%m%d')}.log"
    unrelated = log_dir / "server_latest.log"
    for path in (old, recent, unrelated):
        path.write_text("log")

    deleted = app_module.cleanup_old_logs(str(log_dir), retention_days=60)

    assert deleted == 1
    assert not old.exists()
    assert recent.exists()
    assert unrelated.exists()
    assert app_module.cleanup_old_logs(os.path.join(str(tmp_path), "missing")) == 0

import base64
import shlex
import sys

import pytest
from fastapi.testclient import TestClient

from codeexec.api import create_app
from codeexec.core.models import LanguageKind
from codeexec.settings import Settings

PY_LANG = {"kind": "python"}


@pytest.fixture
def client(tmp_path):
    settings = Settings(
        language=LanguageKind.PYTHON,
        interpreters={"python": [shlex.quote(sys.executable)]},
        temp_dir=tmp_path,
    )
    with TestClient(create_app(settings)) as c:
        yield c


def test_health(client):
    assert client.get("/health").json() == {"ok": True, "language": "python"}


def test_lifecycle(client):
    h = client.post("/sessions", json={"language": PY_LANG}).json()["handle"]
    assert client.get(f"/sessions/{h}/files").json() == {"files": []}

    code = base64.b64encode(b"import sys\nprint('hello', sys.argv[1], sys.stdin.read())").decode()
    r = client.post(f"/sessions/{h}/files", json={"name": "main.py", "content": code, "encoding": "base64"})
    assert r.status_code == 200

    assert client.get(f"/sessions/{h}/files", params={"dir": "/x"}).json() == {"files": ["main.py"]}
    assert client.get(f"/sessions/{h}/files/main.py").content.startswith(b"import sys")

    r = client.post(
        f"/sessions/{h}/run",
        json={"entrypoint": "main.py", "args": ["a"], "stdin": "b", "limits": {"time_ms": 10000, "gpu": 1}},
    )
    assert r.status_code == 200
    body = r.json()
    assert body["compile"] is None
    assert body["memory_bytes"] is None
    assert body["run"] == {"stdout": "hello a b\n", "stderr": "", "exit_code": 0, "signal": None}

    assert client.put(f"/sessions/{h}/working-dir", json={"path": "/work"}).json() == {"ok": True}

    assert client.delete(f"/sessions/{h}").json() == {"ok": True}
    assert client.delete(f"/sessions/{h}").json() == {"ok": True}

    r = client.get(f"/sessions/{h}/files")
    assert r.status_code == 404
    assert r.json()["error"]["kind"] == "internal"


def test_nested_download_path(client):
    h = client.post("/sessions", json={"language": PY_LANG}).json()["handle"]
    client.post(f"/sessions/{h}/files", json={"name": "lib/data.txt", "content": "6869", "encoding": "hex"})
    assert client.get(f"/sessions/{h}/files/lib/data.txt").content == b"hi"


def test_oneshot_run(client):
    r = client.post(
        "/run",
        json={
            "language": PY_LANG,
            "files": [{"name": "main.py", "content": "import os\nprint(os.environ['X'])"}],
            "env": [["X", "y"]],
        },
    )
    assert r.status_code == 200
    assert r.json()["run"]["stdout"] == "y\n"


def test_unsupported_language(client):
    r = client.post("/sessions", json={"language": {"kind": "javascript"}})
    assert r.status_code == 400
    assert r.json() == {"error": {"kind": "unsupported-language", "stage": None, "message": None}}


def test_timeout(client):
    r = client.post(
        "/run",
        json={
            "language": PY_LANG,
            "files": [{"name": "main.py", "content": "import time\ntime.sleep(30)"}],
            "limits": {"time_ms": 300},
        },
    )
    assert r.status_code == 408
    assert r.json()["error"]["kind"] == "timeout"


def test_missing_entrypoint(client):
    h = client.post("/sessions", json={"language": PY_LANG}).json()["handle"]
    r = client.post(f"/sessions/{h}/run", json={"entrypoint": "main.py"})
    assert r.status_code == 404
    assert "not found" in r.json()["error"]["message"]


def test_decode_failure(client):
    h = client.post("/sessions", json={"language": PY_LANG}).json()["handle"]
    r = client.post(f"/sessions/{h}/files", json={"name": "main.py", "content": "xyz", "encoding": "hex"})
    assert r.status_code == 500
    assert r.json()["error"]["message"].startswith("Hex decode error")


def test_missing_file_and_missing_session_share_a_status(client):
    h = client.post("/sessions", json={"language": PY_LANG}).json()["handle"]
    missing_file = client.get(f"/sessions/{h}/files/nope.txt")
    missing_session = client.get("/sessions/999/files/nope.txt")
    assert missing_file.status_code == missing_session.status_code == 404
    assert missing_file.json()["error"]["message"] == "File 'nope.txt' not found"
    assert missing_session.json()["error"]["message"] == "Session not found"


def test_upload_to_unknown_session_with_bad_payload(client):
    r = client.post("/sessions/999/files", json={"name": "main.py", "content": "zz", "encoding": "hex"})
    assert r.status_code == 404
    assert r.json()["error"]["message"] == "Session not found"


def test_app_is_built_on_first_access(monkeypatch, tmp_path):
    import importlib

    import codeexec.api as api

    conf = tmp_path / "exec.yaml"
    conf.write_text("language: cobol\n")
    monkeypatch.setenv("EXEC_CONF", str(conf))
    monkeypatch.delenv("EXEC_LANGUAGE", raising=False)
    api = importlib.reload(api)
    with pytest.raises(ValueError, match="'language'"):
        api.app

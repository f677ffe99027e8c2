import json

import cli


class _Resp:
    def __init__(self, payload, ok=True):
        self._payload = payload
        self.ok = ok

    def json(self):
        return self._payload


class _Recorder:
    def __init__(self):
        self.calls = []

    def _call(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        return _Resp({"ok": True})

    def get(self, url, **kwargs):
        return self._call("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._call("POST", url, **kwargs)

    def put(self, url, **kwargs):
        return self._call("PUT", url, **kwargs)


def _patch(monkeypatch):
    rec = _Recorder()
    monkeypatch.setattr(cli.requests, "get", rec.get)
    monkeypatch.setattr(cli.requests, "post", rec.post)
    monkeypatch.setattr(cli.requests, "put", rec.put)
    return rec


def test_apply_sends_budgets_with_their_types(monkeypatch, capsys):
    rec = _patch(monkeypatch)
    rc = cli.main(
        [
            "--api", "http://fleet:9000/",
            "apply", "--name", "web", "--replicas", "3",
            "--template", json.dumps({"image": "node:v1.29.0"}),
            "--strategy", "InPlace", "--max-surge", "1", "--max-unavailable", "25%",
        ]
    )
    assert rc == 0
    method, url, kwargs = rec.calls[0]
    assert (method, url) == ("POST", "http://fleet:9000/deployments")
    assert kwargs["auth"] == ("admin", "admin")
    assert kwargs["json"] == {
        "name": "web",
        "replicas": 3,
        "template": {"image": "node:v1.29.0"},
        "strategy": "InPlace",
        "paused": False,
        "max_surge": 1,
        "max_unavailable": "25%",
    }
    assert json.loads(capsys.readouterr().out) == {"ok": True}


def test_apply_reads_template_file(monkeypatch, tmp_path):
    rec = _patch(monkeypatch)
    f = tmp_path / "tpl.json"
    f.write_text('{"image": "node:v1.28.0"}', encoding="utf-8")
    cli.main(["apply", "--name", "web", "--template", f"@{f}", "--paused"])
    payload = rec.calls[0][2]["json"]
    assert payload["template"] == {"image": "node:v1.28.0"}
    assert payload["paused"] is True
    assert "max_surge" not in payload


def test_scale_reconcile_and_reads(monkeypatch):
    rec = _patch(monkeypatch)
    cli.main(["--user", "ops", "--password", "pw", "scale", "web", "--replicas", "5"])
    cli.main(["reconcile", "web"])
    cli.main(["deployments", "web"])
    cli.main(["events", "--deployment", "web", "--limit", "5"])

    assert rec.calls[0][:2] == ("PUT", "http://localhost:8000/deployments/web/scale")
    assert rec.calls[0][2]["json"] == {"replicas": 5}
    assert rec.calls[0][2]["auth"] == ("ops", "pw")
    assert rec.calls[1][:2] == ("POST", "http://localhost:8000/deployments/web/reconcile")
    assert rec.calls[2][:2] == ("GET", "http://localhost:8000/deployments/web")
    assert rec.calls[3][2]["params"] == {"limit": 5, "deployment": "web"}

import json
import uuid

import pytest

from mprdb.cli import main

API_URL = "https://mprdb.example/api/"
SERVER_UUID = "6c1c5d3e-8e0b-4a2a-9d1e-0f6a4c1b2e3d"
PLAYER_UUID = "0f0e0d0c-0000-4000-8000-000000000001"


class FakeRegistry:
    def __init__(self) -> None:
        self.submits: dict[str, dict] = {}
        self.registered: list[dict] = []

    def __call__(self, url, method, headers, body):
        path, _, _ = url[len(API_URL):].partition("?")
        payload = json.loads(body) if body else None

        if method == "PUT" and path == "server/register":
            self.registered.append(payload)
            return self._ok({"uuid": SERVER_UUID})
        if method == "DELETE" and path.startswith("server/uuid/"):
            return self._ok({"uuid": path.rsplit("/", 1)[1]})
        if method == "PUT" and path == "submit/new":
            submit_uuid = str(uuid.uuid4())
            self.submits[submit_uuid] = dict(payload, uuid=submit_uuid)
            return self._ok({"uuid": submit_uuid})
        if method == "DELETE" and path.startswith("submit/uuid/"):
            submit_uuid = path.rsplit("/", 1)[1]
            self.submits.pop(submit_uuid)
            return self._ok({"uuid": submit_uuid})
        if method == "GET" and path.startswith("submit/server/"):
            server_uuid = path.rsplit("/", 1)[1]
            submits = [item for item in self.submits.values() if item["content"]["server_uuid"] == server_uuid]
            return self._ok({"submits": submits})
        if method == "GET" and path == "server/list":
            return self._ok({"servers": [
                {"uuid": SERVER_UUID, "server_name": item["content"]["server_name"],
                 "public_key": item["content"]["public_key"], "key_id": item["content"]["key_id"]}
                for item in self.registered
            ]})
        return 404, b'{"status": "NG", "reason": "not found"}'

    @staticmethod
    def _ok(payload: dict):
        return 200, json.dumps(dict(payload, status="OK")).encode("utf-8")


def _run(capsys, *argv, fetcher=None):
    exit_code = main([*argv, "--json"], fetcher=fetcher)
    captured = capsys.readouterr()
    payload = json.loads(captured.out.strip()) if captured.out.strip() else None
    return exit_code, payload, captured.err


@pytest.fixture(autouse=True)
def _no_env_api_url(monkeypatch):
    monkeypatch.delenv("MPRDB_API_URL", raising=False)


def test_cli_config_json(tmp_path, capsys) -> None:
    exit_code, payload, err = _run(capsys, "config", "--home", str(tmp_path), "--api-url", "https://mprdb.example/api")

    assert exit_code == 0
    assert err == ""
    assert payload["command"] == "config"
    assert payload["api_url"] == API_URL
    assert payload["cert_file"].endswith("keyring.json")
    assert payload["server_uuid"] is None


def test_cli_keygen_activates_first_key(tmp_path, capsys) -> None:
    home = str(tmp_path)
    _, first, _ = _run(capsys, "keygen", "--home", home)
    _, second, _ = _run(capsys, "keygen", "--home", home)
    _, keyring, _ = _run(capsys, "keyring", "--home", home)

    assert first["active"] is True
    assert second["active"] is False
    assert first["public_key"].startswith("ed25519:")
    assert keyring["count"] == 2
    assert keyring["active"] == first["key_id"]


def test_cli_submit_without_key(tmp_path, capsys) -> None:
    home = str(tmp_path)
    _run(capsys, "config", "--home", home, "--api-url", API_URL, "--server-uuid", SERVER_UUID)

    exit_code = main(["submit", "--home", home, "--player-uuid", PLAYER_UUID, "--points", "-1"])

    captured = capsys.readouterr()
    assert exit_code == 1
    assert captured.err.startswith("error: ")


def test_cli_submit_without_api_url(tmp_path, capsys) -> None:
    exit_code = main(["submit", "--home", str(tmp_path), "--player-uuid", PLAYER_UUID, "--points", "-1"])

    captured = capsys.readouterr()
    assert exit_code == 1
    assert "missing configuration: api_url" in captured.err


def test_cli_rejects_non_uuid_player(tmp_path, capsys) -> None:
    with pytest.raises(SystemExit):
        main(["submit", "--home", str(tmp_path), "--player-uuid", "abc-123", "--points", "-1"])


def test_cli_cert_add_list_remove(tmp_path, capsys) -> None:
    home = str(tmp_path)
    _, key, _ = _run(capsys, "keygen", "--home", str(tmp_path / "peer"))

    exit_code, added, _ = _run(
        capsys, "cert", "add", "--home", home, "--server-uuid", SERVER_UUID,
        "--public-key", key["public_key"], "--name", "Alpha", "--trust", "80",
    )
    _, listed, _ = _run(capsys, "cert", "list", "--home", home)
    _, removed, _ = _run(capsys, "cert", "remove", "--home", home, "--server-uuid", SERVER_UUID, "--key-id", key["key_id"])
    _, missing, _ = _run(capsys, "cert", "remove", "--home", home, "--server-uuid", SERVER_UUID, "--key-id", key["key_id"])

    assert exit_code == 0
    assert added["key_id"] == key["key_id"]
    assert [entry["public_key"] for entry in listed["entries"]] == [key["public_key"]]
    assert removed["result"] == "removed"
    assert missing["result"] == "not_found"


def test_cli_cert_add_rejects_bad_key(tmp_path, capsys) -> None:
    exit_code = main([
        "cert", "add", "--home", str(tmp_path), "--server-uuid", SERVER_UUID,
        "--public-key", "ed25519:AAAA", "--name", "Alpha", "--trust", "80",
    ])

    assert exit_code == 1
    assert capsys.readouterr().err.startswith("error: ")


def test_cli_register_submit_verify_recall(tmp_path, capsys) -> None:
    home = str(tmp_path)
    registry = FakeRegistry()
    _run(capsys, "config", "--home", home, "--api-url", API_URL)
    _, key, _ = _run(capsys, "keygen", "--home", home)

    _, registered, _ = _run(capsys, "register", "--home", home, "--server-name", "Alpha", fetcher=registry)
    assert registered["server_uuid"] == SERVER_UUID

    _, servers, _ = _run(capsys, "server", "--home", home, fetcher=registry)
    assert servers["servers"][0]["public_key"] == key["public_key"]

    _, submitted, _ = _run(
        capsys, "submit", "--home", home, "--player-uuid", PLAYER_UUID,
        "--points", "-5", "--comment", "griefing", fetcher=registry,
    )
    submit_uuid = submitted["submit_uuid"]
    assert (tmp_path / "records.log").read_text(encoding="utf-8").startswith(f"+ {submit_uuid}:")

    _, untrusted, _ = _run(capsys, "record", "--home", home, "--server-uuid", SERVER_UUID, fetcher=registry)
    assert [row["verdict"] for row in untrusted["records"]] == ["unknown_signer"]

    _run(
        capsys, "cert", "add", "--home", home, "--server-uuid", SERVER_UUID,
        "--public-key", key["public_key"], "--name", "Alpha", "--trust", "80",
    )
    _, trusted, _ = _run(capsys, "record", "--home", home, "--server-uuid", SERVER_UUID, fetcher=registry)
    row = trusted["records"][0]
    assert row["verdict"] == "valid"
    assert row["trust_level"] == 80
    assert row["submit_uuid"] == submit_uuid
    assert row["points"] == -5

    output = tmp_path / "verified.json"
    exit_code, auto, _ = _run(capsys, "record", "--home", home, "--auto", "--output", str(output), fetcher=registry)
    assert exit_code == 0
    assert auto["verified"] == 1
    assert [item["player_uuid"] for item in json.loads(output.read_text(encoding="utf-8"))] == [PLAYER_UUID]

    _, recalled, _ = _run(capsys, "recall", "--home", home, "--record-uuid", submit_uuid, fetcher=registry)
    assert recalled["submit_uuid"] == submit_uuid
    assert registry.submits == {}
    assert (tmp_path / "records.log").read_text(encoding="utf-8").splitlines()[-1].startswith(f"- {submit_uuid}:")

    _, unregistered, _ = _run(capsys, "unregister", "--home", home, fetcher=registry)
    _, config, _ = _run(capsys, "config", "--home", home)
    assert unregistered["server_uuid"] == SERVER_UUID
    assert config["server_uuid"] is None


def test_cli_import_banlist(tmp_path, capsys) -> None:
    home = str(tmp_path)
    registry = FakeRegistry()
    banlist = tmp_path / "banned-players.json"
    banlist.write_text(json.dumps([
        {"uuid": PLAYER_UUID, "name": "Griefer", "reason": "Banned by an operator."},
        {"uuid": "0f0e0d0c-0000-4000-8000-000000000002", "name": "Cheater", "reason": ""},
    ]), encoding="utf-8")
    _run(capsys, "config", "--home", home, "--api-url", API_URL, "--server-uuid", SERVER_UUID)
    _run(capsys, "keygen", "--home", home)

    exit_code, first, _ = _run(capsys, "import", str(banlist), "--home", home, fetcher=registry)
    _, second, _ = _run(capsys, "import", str(banlist), "--home", home, fetcher=registry)

    assert exit_code == 0
    assert first["succeeded"] == 2
    assert second["skipped"] == 2
    assert len(registry.submits) == 2


def test_cli_unwritable_output_is_reported(tmp_path, capsys) -> None:
    home = str(tmp_path)
    _run(capsys, "config", "--home", home, "--api-url", API_URL)

    exit_code = main(
        ["record", "--home", home, "--auto", "--output", str(tmp_path / "missing" / "verified.json")],
        fetcher=FakeRegistry(),
    )

    captured = capsys.readouterr()
    assert exit_code == 1
    assert captured.err.startswith("error: ")


def test_cli_submit_with_broken_journal_sends_nothing(tmp_path, capsys) -> None:
    home = str(tmp_path)
    registry = FakeRegistry()
    _run(capsys, "config", "--home", home, "--api-url", API_URL, "--server-uuid", SERVER_UUID)
    _run(capsys, "keygen", "--home", home)
    (tmp_path / "records.log").write_text("garbage\n", encoding="utf-8")

    exit_code = main(["submit", "--home", home, "--player-uuid", PLAYER_UUID, "--points", "-1"], fetcher=registry)

    assert exit_code == 1
    assert capsys.readouterr().err.startswith("error: ")
    assert registry.submits == {}


def test_cli_recall_with_broken_journal_sends_nothing(tmp_path, capsys) -> None:
    home = str(tmp_path)
    registry = FakeRegistry()
    _run(capsys, "config", "--home", home, "--api-url", API_URL, "--server-uuid", SERVER_UUID)
    _run(capsys, "keygen", "--home", home)
    _, submitted, _ = _run(capsys, "submit", "--home", home, "--player-uuid", PLAYER_UUID, "--points", "-1", fetcher=registry)
    (tmp_path / "records.log").write_text("garbage\n", encoding="utf-8")

    exit_code = main(["recall", "--home", home, "--record-uuid", submitted["submit_uuid"]], fetcher=registry)

    assert exit_code == 1
    assert list(registry.submits) == [submitted["submit_uuid"]]


def test_cli_encrypted_key(tmp_path, capsys, monkeypatch) -> None:
    home = str(tmp_path)
    registry = FakeRegistry()
    monkeypatch.setenv("MPRDB_PASSPHRASE", "correct horse")
    _run(capsys, "config", "--home", home, "--api-url", API_URL)

    _, key, _ = _run(capsys, "keygen", "--home", home, "--encrypt")
    _, keyring, _ = _run(capsys, "keyring", "--home", home)
    exit_code, registered, _ = _run(capsys, "register", "--home", home, "--server-name", "Alpha", fetcher=registry)

    assert key["encrypted"] is True
    assert keyring["keys"][0]["encrypted"] is True
    assert exit_code == 0
    assert registered["server_uuid"] == SERVER_UUID

    monkeypatch.setenv("MPRDB_PASSPHRASE", "battery staple")
    exit_code = main(["submit", "--home", home, "--player-uuid", PLAYER_UUID, "--points", "-1"], fetcher=registry)

    assert exit_code == 1
    assert "Wrong passphrase" in capsys.readouterr().err
    assert registry.submits == {}

"""Client configuration: API url, key container path, active key id, server uuid."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from pathlib import Path

from mprdb.types import JsonDict

CONFIG_VERSION = 1
CONFIG_FILE = "config.json"
KEYRING_FILE = "keyring.json"
JOURNAL_FILE = "records.log"
DEFAULT_MPRDB_HOME = str(Path.home() / ".mprdb")


@dataclass(frozen=True)
class ClientConfig:
    api_url: str | None
    cert_file: str
    key_id: str | None
    server_uuid: str | None


def get_home_dir(explicit_home_dir: str | None = None) -> str:
    return explicit_home_dir or os.environ.get("MPRDB_HOME") or DEFAULT_MPRDB_HOME


def config_path(home_dir: str | None = None) -> Path:
    return Path(get_home_dir(home_dir)) / CONFIG_FILE


def journal_path(home_dir: str | None = None) -> Path:
    return Path(get_home_dir(home_dir)) / JOURNAL_FILE


def normalize_api_url(value: str) -> str:
    value = value.strip()
    if not (value.startswith("http://") or value.startswith("https://")):
        raise ValueError(f"api_url must be an http(s) url, got {value!r}")
    return value if value.endswith("/") else value + "/"


def _normalize_cert_file(value: str) -> str:
    return str(Path(value).expanduser().resolve())


def load_config(home_dir: str | None = None, *, use_env: bool = True) -> ClientConfig:
    home = get_home_dir(home_dir)
    path = config_path(home)

    raw: dict = {}
    if path.exists():
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except Exception as error:
            raise ValueError(f"Failed to parse config file {path}: {error}")
        if not isinstance(raw, dict):
            raise ValueError(f"Config file {path} is invalid")

    api_url = (use_env and os.environ.get("MPRDB_API_URL")) or raw.get("apiUrl")
    cert_file = raw.get("certFile") or str(Path(home) / KEYRING_FILE)

    return ClientConfig(
        api_url=normalize_api_url(str(api_url)) if api_url else None,
        cert_file=_normalize_cert_file(str(cert_file)),
        key_id=str(raw["keyId"]) if raw.get("keyId") else None,
        server_uuid=str(raw["serverUuid"]) if raw.get("serverUuid") else None,
    )


def save_config(config: ClientConfig, home_dir: str | None = None) -> Path:
    path = config_path(home_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    record = JsonDict({
        "version": CONFIG_VERSION,
        "apiUrl": config.api_url,
        "certFile": config.cert_file,
        "keyId": config.key_id,
        "serverUuid": config.server_uuid,
    })
    path.write_text(json.dumps(record, indent=4) + "\n", encoding="utf-8")
    return path


def update_config(home_dir: str | None = None, **changes: str | None) -> ClientConfig:
    """Apply ``changes`` to the stored configuration and persist the result."""
    config = load_config(home_dir, use_env=False)
    if changes.get("api_url"):
        changes["api_url"] = normalize_api_url(str(changes["api_url"]))
    if changes.get("cert_file"):
        changes["cert_file"] = _normalize_cert_file(str(changes["cert_file"]))
    config = replace(config, **changes)
    save_config(config, home_dir)
    return config

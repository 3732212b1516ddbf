"""mprdb command line client."""

from __future__ import annotations

import argparse
import getpass
import json
import os
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from mprdb.batch import import_banlist, load_banlist
from mprdb.builder import StatementBuilder
from mprdb.config import ClientConfig, get_home_dir, journal_path, load_config, update_config
from mprdb.envelope import record_to_display_dict
from mprdb.errors import ConfigMissing, MprdbError, RegistryError
from mprdb.identity import generate_key, key_id_for, list_keys, load_signing_identity
from mprdb.journal import SubmissionJournal
from mprdb.keyring import KeyContainer, decode_public_key, encode_public_key
from mprdb.logger import get_logger
from mprdb.registry import Fetcher, RegistryClient
from mprdb.trust_store import TrustStore
from mprdb.types import RemoveResult, Verdict
from mprdb.verifier import verify_all

logger = get_logger(__name__)

AFTER_FORMAT = "%Y-%m-%d %H:%M:%S"
PASSPHRASE_ENV = "MPRDB_PASSPHRASE"


def _uuid_arg(value: str) -> str:
    try:
        return str(uuid.UUID(value))
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a uuid: {value!r}")


def _after_arg(value: str) -> int:
    try:
        parsed = datetime.strptime(value, AFTER_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected time as YYYY-mm-dd HH:MM:SS, got {value!r}")
    return max(0, int(parsed.timestamp()))


def _build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--home", default=None)
    common.add_argument("--json", action="store_true")

    parser = argparse.ArgumentParser(prog="mprdb", description="Signed ban-record exchange client")
    subparsers = parser.add_subparsers(dest="command", required=True)

    config_parser = subparsers.add_parser("config", parents=[common], help="Show or change settings")
    config_parser.add_argument("--api-url")
    config_parser.add_argument("--cert-file")
    config_parser.add_argument("--key-id")
    config_parser.add_argument("--server-uuid", type=_uuid_arg)
    config_parser.set_defaults(handler=_cmd_config)

    keygen_parser = subparsers.add_parser("keygen", parents=[common], help="Generate a signing key")
    keygen_parser.add_argument(
        "--encrypt",
        action="store_true",
        help=f"protect the key with a passphrase (read from ${PASSPHRASE_ENV} or prompted)",
    )
    keygen_parser.set_defaults(handler=_cmd_keygen)

    keyring_parser = subparsers.add_parser("keyring", parents=[common], help="List local signing keys")
    keyring_parser.set_defaults(handler=_cmd_keyring)

    register_parser = subparsers.add_parser("register", parents=[common], help="Register this server")
    register_parser.add_argument("--server-name", "-s", required=True)
    register_parser.set_defaults(handler=_cmd_register)

    unregister_parser = subparsers.add_parser("unregister", parents=[common], help="Unregister this server")
    unregister_parser.add_argument("--comment")
    unregister_parser.set_defaults(handler=_cmd_unregister)

    submit_parser = subparsers.add_parser("submit", parents=[common], help="Submit one ban record")
    submit_parser.add_argument("--player-uuid", "-p", type=_uuid_arg, required=True)
    submit_parser.add_argument("--points", type=int, required=True)
    submit_parser.add_argument("--comment")
    submit_parser.set_defaults(handler=_cmd_submit)

    recall_parser = subparsers.add_parser("recall", parents=[common], help="Recall a submitted record")
    recall_parser.add_argument("--record-uuid", "-r", type=_uuid_arg, required=True)
    recall_parser.add_argument("--comment")
    recall_parser.set_defaults(handler=_cmd_recall)

    cert_parser = subparsers.add_parser("cert", help="Manage trusted peer keys")
    cert_sub = cert_parser.add_subparsers(dest="cert_command", required=True)

    cert_add = cert_sub.add_parser("add", parents=[common], help="Trust a peer key")
    cert_add.add_argument("--server-uuid", required=True)
    cert_add.add_argument("--public-key", required=True, help="ed25519:<base64>")
    cert_add.add_argument("--key-id", help="defaults to the fingerprint of --public-key")
    cert_add.add_argument("--name", required=True)
    cert_add.add_argument("--trust", type=int, required=True)
    cert_add.set_defaults(handler=_cmd_cert_add)

    cert_remove = cert_sub.add_parser("remove", parents=[common], help="Forget a peer key")
    cert_remove.add_argument("--server-uuid", required=True)
    cert_remove.add_argument("--key-id", required=True)
    cert_remove.set_defaults(handler=_cmd_cert_remove)

    cert_list = cert_sub.add_parser("list", parents=[common], help="List trusted peer keys")
    cert_list.add_argument("--server-uuid")
    cert_list.set_defaults(handler=_cmd_cert_list)

    server_parser = subparsers.add_parser("server", parents=[common], help="List registered servers")
    server_parser.add_argument("--limit", type=int)
    server_parser.set_defaults(handler=_cmd_server)

    record_parser = subparsers.add_parser("record", parents=[common], help="Fetch and verify records")
    according = record_parser.add_mutually_exclusive_group(required=True)
    according.add_argument("--submit-uuid")
    according.add_argument("--server-uuid")
    according.add_argument("--key-id")
    according.add_argument("--auto", action="store_true", help="fetch records of every trusted server")
    record_parser.add_argument("--limit", type=int)
    record_parser.add_argument("--after", type=_after_arg, help="YYYY-mm-dd HH:MM:SS (UTC)")
    record_parser.add_argument("--output", "-o", help="output file for --auto")
    record_parser.set_defaults(handler=_cmd_record)

    import_parser = subparsers.add_parser("import", parents=[common], help="Submit a local ban list")
    import_parser.add_argument("banlist")
    import_parser.add_argument("--interval-ms", type=int, default=0)
    import_parser.set_defaults(handler=_cmd_import)

    return parser


def _emit(args: argparse.Namespace, payload: dict[str, Any], lines: list[str]) -> None:
    if args.json:
        print(json.dumps({"command": args.command, **payload}, sort_keys=True))
        return
    for line in lines:
        print(line)


def _registry(config: ClientConfig, fetcher: Fetcher | None) -> RegistryClient:
    if not config.api_url:
        raise ConfigMissing("api_url")
    return RegistryClient(config.api_url, fetcher=fetcher)


def _trust_store(config: ClientConfig) -> TrustStore:
    return TrustStore.load(KeyContainer(config.cert_file))


def _journal(args: argparse.Namespace) -> SubmissionJournal:
    return SubmissionJournal(journal_path(args.home))


def _read_passphrase(confirm: bool = False) -> str:
    passphrase = os.environ.get(PASSPHRASE_ENV)
    if passphrase:
        return passphrase
    try:
        passphrase = getpass.getpass("Key passphrase: ")
        if confirm and getpass.getpass("Repeat passphrase: ") != passphrase:
            raise ValueError("passphrases do not match")
    except EOFError:
        raise ValueError(f"no passphrase given; set {PASSPHRASE_ENV}")
    if not passphrase:
        raise ValueError("passphrase must not be empty")
    return passphrase


def _cmd_config(args: argparse.Namespace, fetcher: Fetcher | None) -> int:
    changes = {
        name: getattr(args, name)
        for name in ("api_url", "cert_file", "key_id", "server_uuid")
        if getattr(args, name) is not None
    }
    config = update_config(args.home, **changes) if changes else load_config(args.home)
    _emit(
        args,
        {
            "api_url": config.api_url,
            "cert_file": config.cert_file,
            "key_id": config.key_id,
            "server_uuid": config.server_uuid,
            "home": get_home_dir(args.home),
        },
        [
            f"api_url = {config.api_url or ''}",
            f"cert_file = {config.cert_file}",
            f"key_id = {config.key_id or ''}",
            f"server_uuid = {config.server_uuid or ''}",
        ],
    )
    return 0


def _cmd_keygen(args: argparse.Namespace, fetcher: Fetcher | None) -> int:
    config = load_config(args.home)
    passphrase = _read_passphrase(confirm=True) if args.encrypt else None
    result = generate_key(config.cert_file, passphrase)
    activated = not config.key_id
    if activated:
        update_config(args.home, key_id=result.key_id)
    _emit(
        args,
        {
            "key_id": result.key_id,
            "public_key": result.public_key,
            "cert_file": result.cert_file,
            "active": activated,
            "encrypted": passphrase is not None,
        },
        [
            "Generated signing key" + (" (active)" if activated else ""),
            f"keyId: {result.key_id}",
            f"publicKey: {result.public_key}",
            f"certFile: {result.cert_file}",
        ],
    )
    return 0


def _cmd_keyring(args: argparse.Namespace, fetcher: Fetcher | None) -> int:
    config = load_config(args.home)
    keys = list_keys(config.cert_file)
    active = config.key_id or (keys[0].key_id if len(keys) == 1 else None)
    lines = [
        " ".join(filter(None, (
            "*" if key.key_id == active else " ",
            key.key_id,
            key.public_key,
            key.created_at,
            "(encrypted)" if key.encrypted else "",
        )))
        for key in keys
    ] or ["No signing keys found."]
    _emit(
        args,
        {
            "count": len(keys),
            "active": active,
            "keys": [
                {
                    "key_id": key.key_id,
                    "public_key": key.public_key,
                    "created_at": key.created_at,
                    "encrypted": key.encrypted,
                }
                for key in keys
            ],
        },
        lines,
    )
    return 0


def _cmd_register(args: argparse.Namespace, fetcher: Fetcher | None) -> int:
    config = load_config(args.home)
    registry = _registry(config, fetcher)
    identity = load_signing_identity(config, _read_passphrase)
    registration = StatementBuilder(identity).registration(args.server_name)
    server_uuid = registry.register(registration)
    update_config(args.home, server_uuid=server_uuid)
    _emit(
        args,
        {"server_uuid": server_uuid, "key_id": identity.key_id},
        ["registered", f"+ server_uuid: {server_uuid}"],
    )
    return 0


def _cmd_unregister(args: argparse.Namespace, fetcher: Fetcher | None) -> int:
    config = load_config(args.home)
    registry = _registry(config, fetcher)
    identity = load_signing_identity(config, _read_passphrase)
    statement = StatementBuilder(identity, config.server_uuid).unregistration(args.comment)
    server_uuid = registry.unregister(statement)
    update_config(args.home, server_uuid=None)
    _emit(args, {"server_uuid": server_uuid}, ["unregistered", f"- server_uuid: {server_uuid}"])
    return 0


def _cmd_submit(args: argparse.Namespace, fetcher: Fetcher | None) -> int:
    config = load_config(args.home)
    registry = _registry(config, fetcher)
    journal = _journal(args)
    identity = load_signing_identity(config, _read_passphrase)
    record = StatementBuilder(identity, config.server_uuid).submission(
        args.player_uuid, args.points, args.comment
    )
    submit_uuid = registry.submit_record(record)
    journal.record_submit(submit_uuid, record.timestamp, record.player_uuid)
    _emit(
        args,
        {"submit_uuid": submit_uuid, "player_uuid": record.player_uuid, "timestamp": record.timestamp},
        ["submitted", f"+ record_uuid: {submit_uuid}"],
    )
    return 0


def _cmd_recall(args: argparse.Namespace, fetcher: Fetcher | None) -> int:
    config = load_config(args.home)
    registry = _registry(config, fetcher)
    journal = _journal(args)
    identity = load_signing_identity(config, _read_passphrase)
    recall = StatementBuilder(identity, config.server_uuid).recall(args.record_uuid, args.comment)
    submit_uuid = registry.recall_record(recall)
    journal.record_recall(recall.submit_uuid, recall.timestamp)
    _emit(args, {"submit_uuid": submit_uuid}, ["recalled", f"- record_uuid: {submit_uuid}"])
    return 0


def _cmd_cert_add(args: argparse.Namespace, fetcher: Fetcher | None) -> int:
    config = load_config(args.home)
    public_key = decode_public_key(args.public_key)
    key_id = args.key_id or key_id_for(public_key)
    entry = _trust_store(config).add(args.server_uuid, key_id, public_key, args.name, args.trust)
    _emit(
        args,
        {
            "server_uuid": entry.server_uuid,
            "key_id": entry.key_id,
            "name": entry.name,
            "trust_level": entry.trust_level,
        },
        [f"trusted {entry.name} [{entry.server_uuid}] key {entry.key_id} trust {entry.trust_level}"],
    )
    return 0


def _cmd_cert_remove(args: argparse.Namespace, fetcher: Fetcher | None) -> int:
    config = load_config(args.home)
    result = _trust_store(config).remove(args.server_uuid, args.key_id)
    message = "removed" if result is RemoveResult.REMOVED else "not found"
    _emit(
        args,
        {"server_uuid": args.server_uuid, "key_id": args.key_id, "result": result.value},
        [f"{message}: {args.server_uuid} key {args.key_id}"],
    )
    return 0


def _cmd_cert_list(args: argparse.Namespace, fetcher: Fetcher | None) -> int:
    config = load_config(args.home)
    store = _trust_store(config)
    entries = store.list_by_server(args.server_uuid) if args.server_uuid else store.list_all()
    _emit(
        args,
        {
            "count": len(entries),
            "entries": [
                {
                    "server_uuid": entry.server_uuid,
                    "key_id": entry.key_id,
                    "public_key": encode_public_key(entry.public_key),
                    "name": entry.name,
                    "trust_level": entry.trust_level,
                }
                for entry in entries
            ],
        },
        [
            f"server: {entry.name} [{entry.server_uuid}]\n   key: {entry.key_id}   trust: {entry.trust_level}"
            for entry in entries
        ] or ["No trusted servers."],
    )
    return 0


def _cmd_server(args: argparse.Namespace, fetcher: Fetcher | None) -> int:
    config = load_config(args.home)
    servers = _registry(config, fetcher).list_servers(args.limit)
    lines: list[str] = []
    for server in servers:
        lines.append("====================")
        lines.append(f"server_name: {server.name}")
        lines.append(f"server_uuid: {server.server_uuid}")
        lines.append(f"key_id: {server.key_id}")
        lines.append(f"public_key: {server.public_key}")
    _emit(
        args,
        {
            "count": len(servers),
            "servers": [
                {
                    "server_uuid": server.server_uuid,
                    "name": server.name,
                    "key_id": server.key_id,
                    "public_key": server.public_key,
                }
                for server in servers
            ],
        },
        lines or ["No servers registered."],
    )
    return 0


def _verified_row(record, result) -> dict[str, Any]:
    row = dict(record_to_display_dict(record))
    row["verdict"] = result.verdict.value
    row["trust_level"] = result.trust_level
    row["reason"] = result.reason
    if result.entry is not None:
        row["server_name"] = result.entry.name
    return row


def _cmd_record(args: argparse.Namespace, fetcher: Fetcher | None) -> int:
    config = load_config(args.home)
    registry = _registry(config, fetcher)
    store = _trust_store(config)

    if args.auto:
        return _record_auto(args, registry, store)

    records = registry.list_records(
        submit_uuid=args.submit_uuid,
        server_uuid=args.server_uuid,
        key_id=args.key_id,
        after=args.after,
        limit=args.limit,
    )
    rows = [_verified_row(record, result) for record, result in verify_all(records, store)]

    lines: list[str] = []
    for row in rows:
        marker = "+ Verified" if row["verdict"] == Verdict.VALID.value else f"! {row['verdict']}"
        trust = f" trust: {row['trust_level']}" if row["trust_level"] is not None else ""
        lines.append(f"{marker} [{row['submit_uuid']}]{trust}")
        lines.append(
            f"   server: {row['server_uuid']} key: {row['key_id']}"
            f" player: {row['player_uuid']} points: {row['points']}"
        )
        lines.append(f"   timestamp: {row['timestamp']} comment: {row['comment'] or ''}")
        if row["reason"]:
            lines.append(f"   reason: {row['reason']}")
    _emit(args, {"count": len(rows), "records": rows}, lines or ["No records."])
    return 0


def _record_auto(args: argparse.Namespace, registry: RegistryClient, store: TrustStore) -> int:
    if not args.output:
        raise ValueError("--auto requires --output")

    server_uuids = list(dict.fromkeys(entry.server_uuid for entry in store.list_all()))
    verified: list[dict[str, Any]] = []
    rejected = 0
    failures: dict[str, str] = {}
    for server_uuid in server_uuids:
        try:
            records = registry.list_records(server_uuid=server_uuid, after=args.after, limit=args.limit)
        except RegistryError as error:
            logger.warning("fetching records of %s failed: %s", server_uuid, error)
            failures[server_uuid] = str(error)
            continue
        for record, result in verify_all(records, store):
            if result.valid:
                verified.append(_verified_row(record, result))
            else:
                rejected += 1

    output = Path(args.output)
    output.write_text(json.dumps(verified, indent=2) + "\n", encoding="utf-8")
    lines = [f"servers: {len(server_uuids)} verified: {len(verified)} rejected: {rejected}", f"output: {output}"]
    lines.extend(f"failed: {server_uuid}: {reason}" for server_uuid, reason in failures.items())
    _emit(
        args,
        {
            "servers": len(server_uuids),
            "verified": len(verified),
            "rejected": rejected,
            "failures": failures,
            "output": str(output),
        },
        lines,
    )
    return 0 if not failures else 1


def _cmd_import(args: argparse.Namespace, fetcher: Fetcher | None) -> int:
    config = load_config(args.home)
    registry = _registry(config, fetcher)
    items = load_banlist(args.banlist)
    identity = load_signing_identity(config, _read_passphrase)
    summary = import_banlist(
        items,
        builder=StatementBuilder(identity, config.server_uuid),
        registry=registry,
        journal=_journal(args),
        interval_seconds=max(0, args.interval_ms) / 1000.0,
    )

    lines: list[str] = []
    for result in summary.results:
        if result.skipped:
            lines.append(f"= {result.label} already submitted")
        elif result.error is not None:
            lines.append(f"! {result.label} failed: {result.error}")
        else:
            lines.append(f"+ {result.label} record_uuid: {result.submit_uuid}")
    lines.append(
        f"succeeded: {len(summary.succeeded)} failed: {len(summary.failed)} skipped: {len(summary.skipped)}"
    )
    _emit(
        args,
        {
            "succeeded": len(summary.succeeded),
            "failed": len(summary.failed),
            "skipped": len(summary.skipped),
            "results": [
                {
                    "player_uuid": result.label,
                    "submit_uuid": result.submit_uuid,
                    "error": result.error,
                    "skipped": result.skipped,
                }
                for result in summary.results
            ],
        },
        lines,
    )
    return 0 if not summary.failed else 1


def main(argv: list[str] | None = None, fetcher: Fetcher | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        return args.handler(args, fetcher)
    except (MprdbError, ValueError, OSError) as error:
        print(f"error: {error}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())

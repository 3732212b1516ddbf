"""Paced bulk submission, including import of a server's local ban list."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence, TypeVar

from mprdb.builder import StatementBuilder
from mprdb.errors import MalformedRecord, RegistryError
from mprdb.journal import SubmissionJournal
from mprdb.logger import get_logger
from mprdb.registry import RegistryClient

logger = get_logger(__name__)

T = TypeVar("T")

# Per-item failures; anything else (missing key, missing config) aborts the batch.
RECOVERABLE_ERRORS = (RegistryError, MalformedRecord)


@dataclass(frozen=True)
class BanListItem:
    uuid: str
    name: str
    created: str
    source: str
    expires: str
    reason: str


@dataclass(frozen=True)
class BatchItemResult:
    index: int
    label: str
    submit_uuid: str | None = None
    error: str | None = None
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.skipped


@dataclass(frozen=True)
class BatchSummary:
    results: tuple[BatchItemResult, ...]

    @property
    def succeeded(self) -> list[BatchItemResult]:
        return [result for result in self.results if result.ok]

    @property
    def failed(self) -> list[BatchItemResult]:
        return [result for result in self.results if result.error is not None]

    @property
    def skipped(self) -> list[BatchItemResult]:
        return [result for result in self.results if result.skipped]


def load_banlist(path: str | Path) -> list[BanListItem]:
    """Read a ``banned-players.json`` style list."""
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except Exception as error:
        raise ValueError(f"Failed to parse ban list {path}: {error}")
    if not isinstance(raw, list):
        raise ValueError(f"Ban list {path} must be a JSON array")

    items: list[BanListItem] = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict) or not entry.get("uuid"):
            raise ValueError(f"Ban list entry {index} has no uuid")
        items.append(BanListItem(
            uuid=str(entry["uuid"]),
            name=str(entry.get("name", "")),
            created=str(entry.get("created", "")),
            source=str(entry.get("source", "")),
            expires=str(entry.get("expires", "forever")),
            reason=str(entry.get("reason", "")),
        ))
    return items


def basic_points(item: BanListItem) -> int:
    return -1


def run_batch(
    items: Sequence[T],
    submit: Callable[[T], str],
    *,
    label: Callable[[T], str] = str,
    skip: Callable[[T], bool] | None = None,
    interval_seconds: float = 0.0,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> BatchSummary:
    """
    Submit ``items`` one at a time, at least ``interval_seconds`` apart.

    A recoverable failure on one item is recorded and the batch moves on to
    the next item.
    """
    results: list[BatchItemResult] = []
    last_started: float | None = None

    for index, item in enumerate(items):
        name = label(item)
        if skip is not None and skip(item):
            results.append(BatchItemResult(index=index, label=name, skipped=True))
            continue

        if last_started is not None:
            remaining = interval_seconds - (clock() - last_started)
            if remaining > 0:
                sleep(remaining)
        last_started = clock()

        try:
            submit_uuid = submit(item)
        except RECOVERABLE_ERRORS as error:
            logger.warning("batch item %d (%s) failed: %s", index, name, error)
            results.append(BatchItemResult(index=index, label=name, error=str(error)))
            continue
        results.append(BatchItemResult(index=index, label=name, submit_uuid=submit_uuid))

    summary = BatchSummary(results=tuple(results))
    logger.info(
        "batch finished: %d succeeded, %d failed, %d skipped",
        len(summary.succeeded), len(summary.failed), len(summary.skipped),
    )
    return summary


def import_banlist(
    items: Sequence[BanListItem],
    *,
    builder: StatementBuilder,
    registry: RegistryClient,
    journal: SubmissionJournal,
    interval_seconds: float = 0.0,
    points_rule: Callable[[BanListItem], int] = basic_points,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> BatchSummary:
    def submit(item: BanListItem) -> str:
        record = builder.submission(item.uuid, points_rule(item), item.reason or None)
        submit_uuid = registry.submit_record(record)
        journal.record_submit(submit_uuid, record.timestamp, record.player_uuid)
        return submit_uuid

    return run_batch(
        items,
        submit,
        label=lambda item: item.uuid,
        skip=lambda item: journal.submission_for_player(item.uuid) is not None,
        interval_seconds=interval_seconds,
        sleep=sleep,
        clock=clock,
    )

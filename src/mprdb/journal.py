"""
Append-only log of our own submissions and recalls.

Line format::

    + <submit_uuid>:<timestamp> <player_uuid>
    - <submit_uuid>:<timestamp>
"""

from __future__ import annotations

import os
from pathlib import Path


def _parse_head(token: str, line_no: int) -> tuple[str, int]:
    submit_uuid, sep, timestamp = token.partition(":")
    if not sep or not submit_uuid or not timestamp.isdigit():
        raise ValueError(f"Malformed journal entry at line {line_no}: {token!r}")
    return submit_uuid, int(timestamp)


class SubmissionJournal:
    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)
        self._by_submit: dict[str, str] = {}
        # player -> live submissions, oldest first
        self._by_player: dict[str, list[str]] = {}
        if self.path.exists():
            self._replay()

    def _replay(self) -> None:
        for line_no, line in enumerate(self.path.read_text(encoding="utf-8").splitlines(), start=1):
            if not line.strip():
                continue
            parts = line.split(" ")
            if parts[0] == "+" and len(parts) == 3:
                submit_uuid, _ = _parse_head(parts[1], line_no)
                self._by_submit[submit_uuid] = parts[2]
            elif parts[0] == "-" and len(parts) == 2:
                submit_uuid, _ = _parse_head(parts[1], line_no)
                self._by_submit.pop(submit_uuid, None)
            else:
                raise ValueError(f"Malformed journal entry at line {line_no}: {line!r}")
        for submit_uuid, player_uuid in self._by_submit.items():
            self._by_player.setdefault(player_uuid, []).append(submit_uuid)

    def _append(self, line: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")

    def record_submit(self, submit_uuid: str, timestamp: int, player_uuid: str) -> bool:
        if submit_uuid in self._by_submit:
            return False
        self._append(f"+ {submit_uuid}:{timestamp} {player_uuid}")
        self._by_submit[submit_uuid] = player_uuid
        self._by_player.setdefault(player_uuid, []).append(submit_uuid)
        return True

    def record_recall(self, submit_uuid: str, timestamp: int) -> bool:
        player_uuid = self._by_submit.get(submit_uuid)
        if player_uuid is None:
            return False
        self._append(f"- {submit_uuid}:{timestamp}")
        del self._by_submit[submit_uuid]
        live = self._by_player[player_uuid]
        live.remove(submit_uuid)
        if not live:
            del self._by_player[player_uuid]
        return True

    def submission_for_player(self, player_uuid: str) -> str | None:
        """Latest live submission covering ``player_uuid``."""
        live = self._by_player.get(player_uuid)
        return live[-1] if live else None

    def submissions_for_player(self, player_uuid: str) -> list[str]:
        return list(self._by_player.get(player_uuid, ()))

    def player_for_submission(self, submit_uuid: str) -> str | None:
        return self._by_submit.get(submit_uuid)

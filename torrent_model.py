"""In-memory torrent set and the reconciliation of poll responses into it."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional

from rpc_errors import MalformedResponseError

# Daemon status bits as reported in the ``status`` field.
STATUS_CHECK_WAIT = 1
STATUS_CHECK = 2
STATUS_SEED = 4
STATUS_DOWNLOAD = 8
STATUS_STOPPED = 16

# Flags derived on our side; these are what filters and aggregates look at.
FLAG_DOWNLOADING = 1 << 0
FLAG_SEEDING = 1 << 1
FLAG_PAUSED = 1 << 2
FLAG_CHECKING = 1 << 3
FLAG_COMPLETE = 1 << 4
FLAG_ERROR = 1 << 5
FLAG_ACTIVE = 1 << 6


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _as_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def torrent_flags(fields: Mapping[str, Any]) -> int:
    status = _as_int(fields.get("status"))
    flags = 0
    if status & STATUS_DOWNLOAD:
        flags |= FLAG_DOWNLOADING
    if status & STATUS_SEED:
        flags |= FLAG_SEEDING
    if status & STATUS_STOPPED:
        flags |= FLAG_PAUSED
    if status & (STATUS_CHECK | STATUS_CHECK_WAIT):
        flags |= FLAG_CHECKING
    if status & STATUS_SEED or _as_float(fields.get("percentDone")) >= 1.0:
        flags |= FLAG_COMPLETE
    if _as_int(fields.get("error")) != 0 or fields.get("errorString"):
        flags |= FLAG_ERROR
    if _as_int(fields.get("rateDownload")) > 0 or _as_int(fields.get("rateUpload")) > 0:
        flags |= FLAG_ACTIVE
    return flags


@dataclass(frozen=True)
class TorrentSnapshot:
    """Read-only view of one torrent handed out to presentation code."""

    id: int
    name: str
    status: int
    flags: int
    rate_download: int
    rate_upload: int
    percent_done: float
    fields: Mapping[str, Any]


class TorrentRecord:
    def __init__(self, fields: Mapping[str, Any]) -> None:
        self.id = int(fields["id"])
        self.fields: Dict[str, Any] = {}
        self.flags = 0
        self.update(fields)

    def update(self, fields: Mapping[str, Any]) -> None:
        self.fields.update(fields)
        self.flags = torrent_flags(self.fields)

    @property
    def name(self) -> str:
        return str(self.fields.get("name") or "")

    @property
    def status(self) -> int:
        return _as_int(self.fields.get("status"))

    @property
    def rate_download(self) -> int:
        return _as_int(self.fields.get("rateDownload"))

    @property
    def rate_upload(self) -> int:
        return _as_int(self.fields.get("rateUpload"))

    @property
    def percent_done(self) -> float:
        return _as_float(self.fields.get("percentDone"))

    def snapshot(self) -> TorrentSnapshot:
        return TorrentSnapshot(
            id=self.id,
            name=self.name,
            status=self.status,
            flags=self.flags,
            rate_download=self.rate_download,
            rate_upload=self.rate_upload,
            percent_done=self.percent_done,
            fields=MappingProxyType(dict(self.fields)),
        )


@dataclass
class AggregateStats:
    down_rate_total: int = 0
    up_rate_total: int = 0
    seeding: int = 0
    downloading: int = 0
    paused: int = 0
    checking: int = 0
    count: int = 0
    completed: List[TorrentSnapshot] = field(default_factory=list)

    def add(self, record: TorrentRecord) -> None:
        self.count += 1
        self.down_rate_total += record.rate_download
        self.up_rate_total += record.rate_upload
        if record.flags & FLAG_SEEDING:
            self.seeding += 1
        if record.flags & FLAG_DOWNLOADING:
            self.downloading += 1
        if record.flags & FLAG_PAUSED:
            self.paused += 1
        if record.flags & FLAG_CHECKING:
            self.checking += 1


@dataclass(frozen=True)
class TorrentFilter:
    """State-flag plus name-substring filter; empty values match everything."""

    criteria: int = 0
    text: str = ""

    def matches(self, torrent) -> bool:
        if self.criteria and not (torrent.flags & self.criteria):
            return False
        if self.text and self.text not in torrent.name:
            return False
        return True


def _torrent_list(response: Any) -> List[Dict[str, Any]]:
    if not isinstance(response, dict):
        raise MalformedResponseError("response is not an object")
    arguments = response.get("arguments")
    if not isinstance(arguments, dict):
        raise MalformedResponseError("missing arguments")
    torrents = arguments.get("torrents")
    if not isinstance(torrents, list):
        raise MalformedResponseError("missing torrents list")
    for t in torrents:
        if not isinstance(t, dict):
            raise MalformedResponseError("torrent entry is not an object")
        tid = t.get("id")
        if isinstance(tid, bool) or not isinstance(tid, int):
            raise MalformedResponseError(f"torrent entry without an integer id: {tid!r}")
    return torrents


class SnapshotReconciler:
    """Owns the torrent set and merges each ``torrent-get`` response into it.

    Torrents missing from a response are dropped: the daemon always returns
    the full list, so absence means removal.
    """

    def __init__(self) -> None:
        self._records: Dict[int, TorrentRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, torrent_id: int) -> bool:
        return torrent_id in self._records

    def ids(self) -> set:
        return set(self._records)

    def get(self, torrent_id: int) -> Optional[TorrentSnapshot]:
        record = self._records.get(torrent_id)
        return record.snapshot() if record else None

    def clear(self) -> None:
        self._records.clear()

    def snapshot(self, torrent_filter: Optional[TorrentFilter] = None) -> List[TorrentSnapshot]:
        records: Iterable[TorrentRecord] = self._records.values()
        if torrent_filter is not None:
            records = (r for r in records if torrent_filter.matches(r))
        return [r.snapshot() for r in sorted(records, key=lambda r: r.id)]

    def reconcile(self, response: Any, first: bool) -> AggregateStats:
        torrents = _torrent_list(response)
        stats = AggregateStats()

        if first:
            self._records = {}
            for t in torrents:
                record = TorrentRecord(t)
                self._records[record.id] = record
                stats.add(record)
            return stats

        seen = set()
        for t in torrents:
            tid = int(t["id"])
            seen.add(tid)
            record = self._records.get(tid)
            if record is None:
                record = TorrentRecord(t)
                self._records[tid] = record
            else:
                was_complete = record.flags & FLAG_COMPLETE
                record.update(t)
                if not was_complete and record.flags & FLAG_COMPLETE:
                    stats.completed.append(record.snapshot())
            stats.add(record)

        for tid in list(self._records):
            if tid not in seen:
                del self._records[tid]
        return stats

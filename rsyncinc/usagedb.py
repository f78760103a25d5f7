import logging
import os
import re
import shutil
from dataclasses import dataclass
from typing import Tuple

from rsyncinc.errors import UsageDatabaseError
from rsyncinc.naming import NO_NEIGHBOR, format_generation, parse_generation

logger = logging.getLogger(__name__)

re_size = re.compile(r"\d+", re.ASCII)

HEADER = """\
# rsyncinc disk usage database
#
# Each line describes the disk space used by one generation of a backup set:
#
#   size_kb <TAB> name.timestamp <TAB> neighbor1 <TAB> neighbor2
#
# Because generations share files through hardlinks, the size of a generation
# is only valid as long as its two chronological neighbors (timestamps, or '-'
# when there is none) stay the same. The size is recomputed when they change.
"""


def normalize_pair(first, second):
    return (first, second) if first <= second else (second, first)


@dataclass(frozen=True)
class UsageRecord:
    size_kb: int
    neighbors: Tuple[str, str]

    def __post_init__(self):
        object.__setattr__(self, "neighbors", normalize_pair(*self.neighbors))


@dataclass(frozen=True)
class UsageEntry:
    name: str
    timestamp: str
    size_kb: int


class UsageDatabase:
    """Disk usage per generation, keyed by backup set name then timestamp."""

    def __init__(self, sets=None):
        self.sets = {}
        for name, records in (sets or {}).items():
            self.sets[name] = dict(records)

    def __len__(self):
        return sum(len(records) for records in self.sets.values())

    def __eq__(self, other):
        return isinstance(other, UsageDatabase) and self.sets == other.sets

    def set_names(self):
        return sorted(self.sets)

    def get(self, name, timestamp):
        return self.sets.get(name, {}).get(timestamp)

    def set_record(self, name, timestamp, record):
        self.sets.setdefault(name, {})[timestamp] = record

    def is_up_to_date(self, name, timestamp, signature):
        record = self.get(name, timestamp)
        return record is not None and record.neighbors == normalize_pair(*signature)

    def records(self):
        for name in sorted(self.sets):
            for timestamp in sorted(self.sets[name]):
                yield UsageEntry(name, timestamp, self.sets[name][timestamp].size_kb)

    def merge(self, other):
        for name, records in other.sets.items():
            self.sets.setdefault(name, {}).update(records)
        return self

    def prune(self, live_by_set, purge_unlisted_sets=False):
        """
        Drops records of generations that no longer exist.

        live_by_set maps set names to their existing timestamps. Sets missing
        from it are left alone unless purge_unlisted_sets is set.
        """
        removed = 0
        for name, live in live_by_set.items():
            records = self.sets.get(name)
            if not records:
                continue
            live = set(live)
            for timestamp in [ts for ts in records if ts not in live]:
                logger.debug(f"Forgetting usage of {format_generation(name, timestamp)}")
                del records[timestamp]
                removed += 1
            if not records:
                del self.sets[name]
        if purge_unlisted_sets:
            for name in [n for n in self.sets if n not in live_by_set]:
                logger.info(f"Forgetting usage of backup set {name}")
                removed += len(self.sets.pop(name))
        return removed

    @classmethod
    def load(cls, path):
        db = cls()
        if not os.path.exists(path):
            backup = f"{path}.bak"
            if not os.path.exists(backup):
                return db
            logger.warning(f"Usage database {path} is missing, loading its backup {backup}")
            path = backup
        with open(path, "r", encoding="utf-8") as fh:
            for lineno, line in enumerate(fh, start=1):
                line = line.rstrip("\r\n")
                if not line.strip() or line.lstrip().startswith("#"):
                    continue
                name, timestamp, record = _parse_line(path, lineno, line)
                db.set_record(name, timestamp, record)
        return db

    def save(self, path):
        tmp_path = f"{path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as fh:
            fh.write(HEADER)
            fh.write("\n")
            for entry in self.records():
                record = self.get(entry.name, entry.timestamp)
                identifier = format_generation(entry.name, entry.timestamp)
                fh.write(f"{record.size_kb}\t{identifier}\t{record.neighbors[0]}\t{record.neighbors[1]}\n")
            fh.flush()
            os.fsync(fh.fileno())
        # path always holds a complete database, the previous one is copied aside
        if os.path.exists(path):
            shutil.copy2(path, f"{path}.bak")
        os.replace(tmp_path, path)


def _parse_line(path, lineno, line):
    fields = line.split("\t")
    if len(fields) != 4:
        raise UsageDatabaseError(f"{path}:{lineno}: expected 4 tab separated fields, got {len(fields)}")
    size, identifier, first, second = fields
    if not re_size.fullmatch(size):
        raise UsageDatabaseError(f"{path}:{lineno}: invalid size '{size}'")
    parsed = parse_generation(identifier)
    if parsed is None:
        raise UsageDatabaseError(f"{path}:{lineno}: '{identifier}' is not a generation name")
    for neighbor in (first, second):
        if neighbor != NO_NEIGHBOR and not neighbor.strip():
            raise UsageDatabaseError(f"{path}:{lineno}: empty neighbor field")
    name, timestamp = parsed
    return name, timestamp, UsageRecord(int(size), (first, second))

import logging
import re
from dataclasses import dataclass, field
from subprocess import CalledProcessError, check_output
from typing import List

from rsyncinc.errors import MeasurementError
from rsyncinc.naming import NO_NEIGHBOR, format_generation, generation_path
from rsyncinc.usagedb import UsageRecord, normalize_pair

logger = logging.getLogger(__name__)

DU_COMMAND = ("du", "-s", "-k")

re_size = re.compile(r"\d+", re.ASCII)


@dataclass
class RefreshSummary:
    measured: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    pruned: int = 0


def dependency_signature(timestamps, index):
    before = timestamps[index - 1] if index > 0 else NO_NEIGHBOR
    after = timestamps[index + 1] if index + 1 < len(timestamps) else NO_NEIGHBOR
    return normalize_pair(before, after)


def measurement_paths(directory, name, timestamps, index):
    """
    Paths to hand to the disk usage tool: the previous neighbor, the next
    neighbor, then the generation itself. The neighbors must be scanned first
    so that files hardlinked with them are not charged to the target.
    """
    paths = []
    if index > 0:
        paths.append(generation_path(directory, name, timestamps[index - 1]))
    if index + 1 < len(timestamps):
        paths.append(generation_path(directory, name, timestamps[index + 1]))
    paths.append(generation_path(directory, name, timestamps[index]))
    return paths


def du_measure(paths, du_command=DU_COMMAND):
    # du counts every inode once per invocation, so all paths go in one run
    cmd = list(du_command) + list(paths)
    logger.debug(f"EXECUTING \"{' '.join(cmd)}\"")
    try:
        out = check_output(cmd)
    except (CalledProcessError, OSError) as err:
        raise MeasurementError(f"{' '.join(cmd)} failed : {err}") from err
    lines = [line for line in out.decode(errors="replace").split("\n") if line.strip()]
    if len(lines) != len(paths):
        raise MeasurementError(f"Expected {len(paths)} lines from du, got {len(lines)}")
    sizes = []
    for line in lines:
        value = line.split(None, 1)[0]
        if not re_size.fullmatch(value):
            raise MeasurementError(f"Can't parse du output line '{line}'")
        sizes.append(int(value))
    return sizes


def refresh_set(db, directory, name, timestamps, measure=du_measure, summary=None):
    if summary is None:
        summary = RefreshSummary()
    timestamps = sorted(timestamps)
    for index, timestamp in enumerate(timestamps):
        identifier = format_generation(name, timestamp)
        signature = dependency_signature(timestamps, index)
        if db.is_up_to_date(name, timestamp, signature):
            summary.skipped.append(identifier)
            continue
        paths = measurement_paths(directory, name, timestamps, index)
        try:
            sizes = measure(paths)
            if not sizes:
                raise MeasurementError(f"No measurement returned for {identifier}")
            size_kb = sizes[-1]
            if not isinstance(size_kb, int) or size_kb < 0:
                raise MeasurementError(f"Invalid measurement {size_kb!r} for {identifier}")
        except MeasurementError as err:
            logger.error(f"Can't compute disk usage of {identifier} : {err}")
            summary.failed.append(identifier)
            continue
        logger.info(f"Disk usage of {identifier} : {size_kb} KB")
        db.set_record(name, timestamp, UsageRecord(size_kb, signature))
        summary.measured.append(identifier)
    return summary


def refresh_usage(db, directory, live_by_set, measure=du_measure, purge_unlisted_sets=False):
    """
    Brings db up to date with the generations currently on disk.

    Only generations that are new, or whose neighbors changed since their
    size was recorded, are measured again.
    """
    summary = RefreshSummary()
    summary.pruned = db.prune(live_by_set, purge_unlisted_sets)
    for name in sorted(live_by_set):
        refresh_set(db, directory, name, live_by_set[name], measure, summary)
    logger.info(
        f"Usage refresh : {len(summary.measured)} measured, "
        f"{len(summary.skipped)} up to date, {len(summary.failed)} failed"
    )
    return summary

import glob
import logging
import os
import re
from collections import deque

from rsyncinc.errors import StatsError
from rsyncinc.naming import LOG_SUFFIX, parse_generation
from rsyncinc.reports import ReportEntry

logger = logging.getLogger(__name__)

TAIL_LINES = 40

# Number of files: 6287
# Number of files transferred: 91          (older rsync)
# Number of regular files transferred: 91  (rsync >= 3.1)
# Total file size: 1031860036 bytes
# Total transferred file size: 10939485 bytes
SUMMARY_PATTERNS = {
    "totf": re.compile(r"^Number of files: ([\d,]+)", re.M),
    "incf": re.compile(r"^Number of (?:regular )?files transferred: ([\d,]+)", re.M),
    "tots": re.compile(r"^Total file size: ([\d,]+)", re.M),
    "incs": re.compile(r"^Total transferred file size: ([\d,]+)", re.M),
}

re_completed = re.compile(r"^total size is", re.M)


def sync_completed(text):
    return re_completed.search(text) is not None


def parse_rsync_summary(text):
    values = {}
    for key, pattern in SUMMARY_PATTERNS.items():
        m = pattern.search(text)
        if m is None:
            raise StatsError(f"Can't parse rsync output, missing '{key}':\n{text}")
        values[key] = int(m.group(1).replace(",", ""))
    return values


def read_tail(path, lines=TAIL_LINES):
    with open(path, "r", encoding="utf-8", errors="replace") as fh:
        return "".join(deque(fh, maxlen=lines))


def gather_stats(directory, name):
    pattern = os.path.join(glob.escape(directory), f"{glob.escape(name)}.*{LOG_SUFFIX}")
    entries = []
    for path in sorted(glob.glob(pattern)):
        identifier = os.path.basename(path)[: -len(LOG_SUFFIX)]
        parsed = parse_generation(identifier)
        if parsed is None or parsed[0] != name:
            continue
        values = parse_rsync_summary(read_tail(path))
        entries.append(ReportEntry(name, parsed[1], values))
    if not entries:
        raise StatsError(f"Can't find rsync logs for backup set '{name}' in {directory}")
    return entries

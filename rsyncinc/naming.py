import os
import re

TIME_FORMAT = "%Y-%m-%dT%H%M%S"
LOG_SUFFIX = ".rsync_log"
NO_NEIGHBOR = "-"

re_timestamp = re.compile(r"^\d{4}-\d\d-\d\dT\d{6}$")
re_generation = re.compile(r"^(.+)\.(\d{4}-\d\d-\d\dT\d{6})$")


def make_timestamp(when):
    return when.strftime(TIME_FORMAT)


def format_generation(core_name, timestamp):
    if not re_timestamp.match(timestamp):
        raise ValueError(f"Invalid generation timestamp '{timestamp}'")
    return f"{core_name}.{timestamp}"


def parse_generation(identifier):
    """
    Splits 'name.YYYY-MM-DDTHHMMSS' into (name, timestamp).
    Returns None for anything that is not a generation.
    """
    m = re_generation.match(identifier)
    if m is None:
        return None
    return m.group(1), m.group(2)


def timestamp_date(timestamp):
    return timestamp[:10]


def timestamp_month_day(timestamp):
    return int(timestamp[8:10])


# returns {core_name: [timestamp, ...]}, each list sorted from older to newer
def group_by_core_name(identifiers):
    groups = {}
    for identifier in identifiers:
        parsed = parse_generation(identifier)
        if parsed is None:
            continue
        name, timestamp = parsed
        groups.setdefault(name, []).append(timestamp)
    for timestamps in groups.values():
        timestamps.sort()
    return groups


def generation_path(directory, name, timestamp):
    return os.path.join(directory, format_generation(name, timestamp))


def log_path(directory, name, timestamp):
    return generation_path(directory, name, timestamp) + LOG_SUFFIX


def scan_generations(directory, name=None):
    """
    Lists the complete generations stored in directory.

    A generation is complete when both the tree 'name.timestamp' and its
    transfer log 'name.timestamp.rsync_log' exist.
    """
    if not os.path.isdir(directory):
        return {}
    entries = set(os.listdir(directory))
    complete = []
    for entry in entries:
        parsed = parse_generation(entry)
        if parsed is None:
            continue
        if name is not None and parsed[0] != name:
            continue
        if entry + LOG_SUFFIX not in entries:
            continue
        if not os.path.isdir(os.path.join(directory, entry)):
            continue
        complete.append(entry)
    return group_by_core_name(complete)

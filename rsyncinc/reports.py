import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, Tuple

from rsyncinc.errors import ConfigError
from rsyncinc.naming import timestamp_date

re_date = re.compile(r"^\d{4}(-\d\d(-\d\d)?)?$")
re_days_ago = re.compile(r"^-(\d+)$")


@dataclass(frozen=True)
class ReportEntry:
    name: str
    timestamp: str
    values: Dict[str, int] = field(default_factory=dict, compare=False)

    @property
    def date(self):
        return timestamp_date(self.timestamp)


def validate_date(text, today=None):
    """
    Accepts 2013 (whole year), 2013-04 (month), 2013-04-17 (day) or -3
    (three days before today).
    """
    text = str(text)
    m = re_days_ago.match(text)
    if m:
        today = today or date.today()
        return (today - timedelta(days=int(m.group(1)))).isoformat()
    if not re_date.match(text):
        raise ConfigError(f"Illegal date '{text}': should be YYYY or YYYY-MM or YYYY-MM-DD or -N")
    return text


def filter_by_date_range(entries, after=None, before=None):
    selected = []
    for entry in entries:
        if after and entry.date[: len(after)] < after:
            continue
        if before and entry.date[: len(before)] > before:
            continue
        selected.append(entry)
    return selected


def filter_by_threshold(entries, field_name, minimum=None, maximum=None):
    selected = []
    for entry in entries:
        value = entry.values[field_name]
        if minimum is not None and value < minimum:
            continue
        if maximum is not None and value > maximum:
            continue
        selected.append(entry)
    return selected


def sort_by_value(entries, field_name):
    # value descending, then name ascending, then date descending
    ordered = sorted(entries, key=lambda e: e.timestamp, reverse=True)
    ordered.sort(key=lambda e: e.name)
    ordered.sort(key=lambda e: e.values[field_name], reverse=True)
    return ordered


def sort_by_name_then_date(entries):
    return sorted(entries, key=lambda e: (e.name, e.timestamp))


def sort_by_date_then_name(entries):
    return sorted(entries, key=lambda e: (e.timestamp, e.name))


def top_n(entries, n=None, dedupe_by_name=False):
    selected = []
    seen = set()
    for entry in entries:
        if n is not None and len(selected) >= n:
            break
        if dedupe_by_name:
            if entry.name in seen:
                continue
            seen.add(entry.name)
        selected.append(entry)
    return selected


SORTERS = {
    "name": sort_by_name_then_date,
    "date": sort_by_date_then_name,
}


@dataclass(frozen=True)
class Report:
    """Entries collected for one report, refined stage by stage."""

    entries: Tuple[ReportEntry, ...] = ()

    def __len__(self):
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def between(self, after=None, before=None):
        return Report(tuple(filter_by_date_range(self.entries, after, before)))

    def threshold(self, field_name, minimum=None, maximum=None):
        return Report(tuple(filter_by_threshold(self.entries, field_name, minimum, maximum)))

    def sorted_by(self, key):
        if key in SORTERS:
            return Report(tuple(SORTERS[key](self.entries)))
        return Report(tuple(sort_by_value(self.entries, key)))

    def top(self, n=None, dedupe_by_name=False):
        return Report(tuple(top_n(self.entries, n, dedupe_by_name)))


def human_size(nbytes):
    if nbytes >= 1073741824:
        return "%.2f Gibytes" % (nbytes / 1073741824)
    if nbytes >= 1048576:
        return "%.2f Mibytes" % (nbytes / 1048576)
    if nbytes >= 1024:
        return "%.2f Kibytes" % (nbytes / 1024)
    return "%d bytes" % nbytes


def format_report(title, entries, field_name, size_factor=None):
    """
    Renders one report. size_factor is the number of bytes per unit of the
    field when it holds a size, None for counts.
    """
    lines = ["", f"========={title}========="]
    for entry in entries:
        value = entry.values[field_name]
        if size_factor is not None:
            value = human_size(value * size_factor)
        lines.append("%10s %-26s %14s" % (entry.date, entry.name, value))
    return "\n".join(lines)

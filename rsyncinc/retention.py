import logging
import os
import re
import shutil
from dataclasses import dataclass
from typing import Optional, Tuple

from rsyncinc.errors import ConfigError
from rsyncinc.naming import (
    format_generation,
    generation_path,
    log_path,
    parse_generation,
    scan_generations,
    timestamp_month_day,
)

logger = logging.getLogger(__name__)

re_keep_recent = re.compile(r"^[1-9]\d*(,[1-9]\d*)+$")


@dataclass(frozen=True)
class RetentionPolicy:
    # keep the 'keep_count' most recent generations
    keep_count: Optional[int] = None
    # keep the 'keep_most_recent' most recent generations, plus older ones
    # falling on one of 'keep_month_days'
    keep_most_recent: Optional[int] = None
    keep_month_days: Tuple[int, ...] = ()

    @property
    def active(self):
        return self.keep_count is not None or self.keep_most_recent is not None

    def validate(self):
        if self.keep_count is not None and self.keep_count < 1:
            raise ConfigError(f"Number of generations to keep must be greater than 0, got {self.keep_count}")
        if self.keep_most_recent is not None:
            if self.keep_most_recent < 1:
                raise ConfigError(
                    f"Number of recent generations to keep must be greater than 0, got {self.keep_most_recent}"
                )
            if not self.keep_month_days:
                raise ConfigError("At least one month day is required along with the recent generations count")
        for day in self.keep_month_days:
            if not 1 <= day <= 31:
                raise ConfigError(f"Month day {day} is not between 1 and 31")
        return self


def parse_keep_recent(value):
    """
    Parses '14,1,9,17,25' into (14, (1, 9, 17, 25)): the number of most
    recent generations to keep, followed by the protected month days.
    """
    text = str(value).replace(" ", "")
    if not re_keep_recent.match(text):
        raise ConfigError(f"Keep recent value '{value}' should look like '30,1' or '30,1,15'")
    numbers = [int(x) for x in text.split(",")]
    return numbers[0], tuple(numbers[1:])


def make_policy(keep=None, keep_recent=None):
    most_recent = None
    month_days = ()
    if keep_recent is not None:
        most_recent, month_days = parse_keep_recent(keep_recent)
    policy = RetentionPolicy(
        keep_count=None if keep is None else int(keep),
        keep_most_recent=most_recent,
        keep_month_days=month_days,
    )
    return policy.validate()


def _month_day(identifier):
    parsed = parse_generation(identifier)
    if parsed is None:
        return None
    return timestamp_month_day(parsed[1])


def select_generations(identifiers, policy):
    """
    Splits the generations of one backup set into (to_delete, to_keep).

    The month day rule runs first over the generations older than the
    'keep_most_recent' newest ones. The count rule then trims the oldest
    survivors of the first rule, protected month days included.
    Both returned lists are in chronological order.
    """
    entries = sorted(identifiers)
    to_delete = []

    most_recent = policy.keep_most_recent
    if most_recent is not None and most_recent > 0 and len(entries) > most_recent:
        month_days = set(policy.keep_month_days)
        for i in range(len(entries) - 1 - most_recent, -1, -1):
            day = _month_day(entries[i])
            if day is None or day in month_days:
                continue
            to_delete.append(entries.pop(i))

    if policy.keep_count is not None and len(entries) > policy.keep_count:
        too_many = len(entries) - policy.keep_count
        to_delete.extend(entries[:too_many])
        del entries[:too_many]

    return sorted(to_delete), entries


def delete_generation(directory, name, timestamp):
    tree = generation_path(directory, name, timestamp)
    if os.path.isdir(tree):
        shutil.rmtree(tree)
    rsync_log = log_path(directory, name, timestamp)
    if os.path.exists(rsync_log):
        os.remove(rsync_log)


def prune_generations(directory, name, policy, dry_run=False):
    if not policy.active:
        return [], []
    timestamps = scan_generations(directory, name).get(name, [])
    identifiers = [format_generation(name, ts) for ts in timestamps]
    logger.info(f"There is a total of {len(identifiers)} generations of {name} already present")
    to_delete, to_keep = select_generations(identifiers, policy)
    if to_delete:
        logger.info(f"There are {len(to_delete)} old generations of {name} to erase")
    for identifier in to_delete:
        if dry_run:
            logger.info(f"Would erase old generation {directory}/{identifier}")
            continue
        logger.info(f"Erasing old generation {directory}/{identifier}")
        delete_generation(directory, *parse_generation(identifier))
    return to_delete, to_keep

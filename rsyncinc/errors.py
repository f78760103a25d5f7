class RsyncIncError(Exception):
    """Base class for errors reported by rsyncinc."""


class ConfigError(RsyncIncError):
    pass


class UsageDatabaseError(RsyncIncError):
    pass


class MeasurementError(RsyncIncError):
    pass


class StatsError(RsyncIncError):
    pass


class BackupError(RsyncIncError):
    pass

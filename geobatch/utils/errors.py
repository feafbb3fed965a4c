"""Exception types shared by the converter app."""


class GeobatchError(Exception):
    """Base class for geobatch errors."""


class ConfigurationError(GeobatchError):
    """Invalid user input (bad region selection, bad region code).

    Raised before any job state is created.
    """


class OrphanedJobError(GeobatchError):
    """The dataset a job points at can no longer be resolved."""

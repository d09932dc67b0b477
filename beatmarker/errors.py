"""Exception types raised by the tracker."""


class BeatTrackerError(Exception):
    """Base class for tracker errors."""


class InvalidConfiguration(BeatTrackerError, ValueError):
    """Bad particle count, tempo range, hop size or similar setup value."""


class TrackerNotInitialized(BeatTrackerError, RuntimeError):
    """``update`` was called before the particle population was seeded."""


class DegenerateWeights(BeatTrackerError):
    """All particle weights collapsed to zero (or became non-finite).

    Raised internally during normalization and recovered by resetting the
    population to uniform weights. Callers never see it.
    """

class TrainloadError(Exception):
    """Base class for analytics engine errors."""
    pass


class MissingInputError(TrainloadError):
    """Raised when a required input (sample series, threshold) is absent."""

    def __init__(self, input_name: str, message: str | None = None):
        self.input_name = input_name
        super().__init__(message or f"Missing required input: {input_name}")


class InvalidConfigurationError(TrainloadError, ValueError):
    """Raised at construction time for unusable engine configuration."""
    pass


class ActivityNotFoundError(TrainloadError, LookupError):
    """Raised when an activity id is unknown to the repository."""

    def __init__(self, activity_id: str):
        self.activity_id = activity_id
        super().__init__(f"Activity {activity_id} not found")


class TrendSequenceError(TrainloadError, ValueError):
    """Raised when daily loads handed to the trend recurrence are not consecutive days."""
    pass

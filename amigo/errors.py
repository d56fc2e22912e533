class AmigoError(Exception):
    """Base class for every recoverable condition raised inside the core."""


class PersistenceUnavailable(AmigoError):
    """The durable medium refused a read, write or clear."""


class MalformedStoredData(AmigoError):
    """A stored value could not be parsed into its expected shape."""

    def __init__(self, key: str, reason: str):
        super().__init__(f"{key}: {reason}")
        self.key = key
        self.reason = reason


class TranslationMissing(AmigoError, LookupError):
    """No dictionary holds a string for the requested key."""


class GenerationRequestFailed(AmigoError):
    """Transport error, timeout or schema mismatch from the generation client."""

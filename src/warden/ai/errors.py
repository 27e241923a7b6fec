class ClassifierError(Exception):
    """The moderation classifier returned no usable result."""


class TriageError(Exception):
    """The triage model refused, returned nothing, or returned malformed output."""

"""Everything the resolution pipeline can fail with.

Callers branch on the class (or on `kind` when crossing a boundary). Nothing in
the core retries.
"""


class SnapChefError(Exception):
    kind = "error"


class InvalidImage(SnapChefError):
    """The upload is not something we accept. Caught before the core runs."""

    kind = "validation"


class ModelError(SnapChefError):
    """The vision model provider could not be reached or refused the call."""

    kind = "model"


class MalformedModelOutput(SnapChefError):
    """The provider answered, but there is no usable JSON object in the answer."""

    kind = "malformed_output"

    def __init__(self, msg: str, *, raw: str = "") -> None:
        super().__init__(msg)
        self.raw = raw


class PersistenceError(SnapChefError):
    kind = "persistence"


class ImageArchiveError(PersistenceError):
    pass


class RecipeNotFound(SnapChefError):
    kind = "not_found"


class DeadlineExceeded(SnapChefError):
    kind = "timeout"

    def __init__(self, stage: str, seconds: float) -> None:
        super().__init__(f"{stage} did not finish within {seconds:g} seconds")
        self.stage = stage
        self.seconds = seconds

class PaletteError(ValueError):
    """Base class for palette extraction errors."""


class InvalidParameterError(PaletteError):
    """Raised for a non-positive k or iteration budget, or malformed inputs."""


class InsufficientObservationsError(PaletteError):
    """Raised when fewer observations than requested clusters are supplied."""

    def __init__(self, observations: int, k: int):
        self.observations = observations
        self.k = k
        super().__init__(f"too few observations for k ({observations} < {k})")

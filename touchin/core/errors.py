class MissingIdentityError(RuntimeError):
    """No user id could be resolved for a proximity operation."""


class GeocodeError(RuntimeError):
    """Reverse geocoding lookup failed."""


class LedgerConflictError(RuntimeError):
    """An encounter transaction could not be committed after all retries."""

"""Exception types raised by the simulation core."""


class ConfigurationError(ValueError):
    """A parameter is outside its valid range.

    Raised at the call that received the bad value. Values are never clamped.
    """


class InvariantError(RuntimeError):
    """Simulation state broke a structural invariant.

    Fatal: indicates a logic or configuration defect upstream.
    """


class CapacityError(InvariantError):
    """An area would hold more agents than fit in it geometrically.

    The operation that triggered it is aborted and membership is left
    unchanged.
    """

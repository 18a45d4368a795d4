"""Exceptions raised by the phase-type computations.

Parameter and data problems are detected at the public functions and
reported with the offending value. Numerical problems found inside the
Poisson/uniformization sweeps are reported as NumericalError; they mean the
tolerance and uniformization factor cannot be used for the given time horizon.
"""


class CPHSRMError(Exception):
    """Base class for all errors raised by the package."""
    pass


class InvalidParameter(CPHSRMError, ValueError):
    """A distribution parameter or a numerical control value is invalid."""
    pass


class NumericalError(CPHSRMError, ArithmeticError):
    """A truncation bound or a renormalisation weight is unusable."""
    pass


class DataError(CPHSRMError, ValueError):
    """Fault data that cannot be used for estimation."""
    pass

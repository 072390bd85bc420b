"""
Exception and warning types raised by the spectrum processing functions.
"""


class GammaSpecError(Exception):
    """Base class for all gammaspec errors."""


class ParameterError(GammaSpecError, ValueError):
    """Invalid dimensions, out-of-range thresholds or windows, bad counts."""


class DegenerateInputError(GammaSpecError, ValueError):
    """Response kernel or response matrix row without any non-zero entry."""


class PeakBufferFullWarning(UserWarning):
    """The ranked peak list reached its capacity; lower-ranked peaks were dropped."""

"""
Spectrum containers shared by the processing algorithms.

A spectrum is a one-dimensional array of channel contents. Every algorithm
copies the caller's data into its own buffers, so the input is never
modified. This module provides:

- validation helpers that turn arbitrary sequences into float arrays
- SpectrumBuffer, a spectrum with a padded (extended) working copy
- ResponseKernel, the support/peak/area description of a response vector
- a bounds-clipped boxcar mean used by the smoothing variant of clipping
"""

from dataclasses import dataclass
from typing import Sequence, Union

import numpy as np

from .exceptions import ParameterError, DegenerateInputError


ArrayLike = Union[Sequence[float], np.ndarray]


def as_spectrum(values: ArrayLike, name: str = 'spectrum') -> np.ndarray:
    """
    Convert input data into a private float64 spectrum array.

    Parameters:
        values: Channel contents
        name: Name used in error messages

    Returns:
        One-dimensional float array (always a copy)

    Raises:
        ParameterError: If the data is empty, not 1-D or not finite
    """
    try:
        counts = np.array(values, dtype=float)
    except (TypeError, ValueError) as e:
        raise ParameterError(f"{name} must be a sequence of numbers: {e}")

    if counts.ndim != 1:
        raise ParameterError(f"{name} must be one-dimensional, got shape {counts.shape}")
    if counts.size == 0:
        raise ParameterError(f"{name} must contain at least one channel")
    if not np.all(np.isfinite(counts)):
        raise ParameterError(f"{name} contains NaN or infinite values")

    return counts


def clipped_boxcar_mean(values: np.ndarray, half_width: int) -> np.ndarray:
    """
    Local mean over [i - half_width, i + half_width] clipped to the array.

    Channels near the edges are averaged over the part of the window that
    lies inside the array, not over a padded window. Each window is summed
    left to right, so equal windows give bit-identical means.

    Parameters:
        values: Input array
        half_width: Half width of the averaging window

    Returns:
        Array of local means
    """
    if half_width <= 0:
        return values.astype(float, copy=True)

    n = len(values)
    padded = np.pad(values.astype(float), half_width)
    inside = np.pad(np.ones(n), half_width)

    sums = np.zeros(n)
    counts = np.zeros(n)
    for k in range(2 * half_width + 1):
        sums += padded[k:k + n]
        counts += inside[k:k + n]
    return sums / counts


def low_edge_slope(counts: np.ndarray, n_samples: int) -> float:
    """
    Least-squares slope of the first channels, never positive.

    Spectra are assumed non-increasing near channel 0, so a rising fit is
    replaced by a flat one.

    Parameters:
        counts: Spectrum
        n_samples: Number of leading channels to fit

    Returns:
        Slope (<= 0), or 0 when fewer than two samples are available
    """
    n = min(n_samples, len(counts))
    if n < 2:
        return 0.0

    slope = np.polyfit(np.arange(n, dtype=float), counts[:n], 1)[0]
    return float(min(slope, 0.0))


@dataclass
class SpectrumBuffer:
    """
    Spectrum with a symmetric padded working copy.

    The left pad continues the spectrum linearly with `slope` (measured from
    channel 0 outward), the right pad repeats the last channel. Both pads
    are clamped to non-negative values.
    """
    counts: np.ndarray
    pad: int = 0
    slope: float = 0.0

    def __post_init__(self):
        self.counts = as_spectrum(self.counts)
        if self.pad < 0:
            raise ParameterError("pad must be non-negative")

    @property
    def size(self) -> int:
        return len(self.counts)

    @property
    def extended_size(self) -> int:
        return self.size + 2 * self.pad

    @property
    def inner(self) -> slice:
        """Slice of the extended buffer holding the original channels."""
        return slice(self.pad, self.pad + self.size)

    def extended(self) -> np.ndarray:
        """Return a new padded copy of the spectrum."""
        ext = np.empty(self.extended_size)
        offsets = np.arange(self.pad) - self.pad
        ext[:self.pad] = np.maximum(self.counts[0] + self.slope * offsets, 0.0)
        ext[self.inner] = self.counts
        ext[self.pad + self.size:] = max(self.counts[-1], 0.0)
        return ext

    def trim(self, extended: np.ndarray) -> np.ndarray:
        """Cut an extended-length trace back to the original channels."""
        if len(extended) != self.extended_size:
            raise ParameterError(
                f"Expected trace of length {self.extended_size}, got {len(extended)}")
        return extended[self.inner].copy()


@dataclass
class ResponseKernel:
    """
    Response (point-spread) vector with its derived quantities.

    Attributes:
        values: Response values
        support: Index of the last non-zero element + 1
        peak_position: Index of the first maximum
        area: Sum of all values
    """
    values: np.ndarray
    support: int
    peak_position: int
    area: float

    @classmethod
    def from_values(cls, values: ArrayLike) -> 'ResponseKernel':
        """
        Build a kernel description from a response vector.

        Raises:
            DegenerateInputError: If every element is zero
        """
        response = as_spectrum(values, name='response')
        nonzero = np.flatnonzero(response)
        if len(nonzero) == 0:
            raise DegenerateInputError("Zero response vector")

        # Non-positive responses keep the peak at channel 0
        peak_position = int(np.argmax(response)) if np.max(response) > 0 else 0

        return cls(values=response,
                   support=int(nonzero[-1]) + 1,
                   peak_position=peak_position,
                   area=float(np.sum(response)))

    @property
    def head(self) -> np.ndarray:
        """Response values up to the end of the support."""
        return self.values[:self.support]

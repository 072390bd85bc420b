"""
Background estimation for gamma spectra.

SNIP (Sensitive Nonlinear Iterative Peak-clipping) background: the spectrum
is clipped repeatedly with windows of growing (or shrinking) width. Wide
windows erode peak-like excursions while leaving a smooth continuum
intact. Higher filter orders additionally compare with 4th, 6th and 8th
order finite-difference estimates, which follow curved continua more
closely. An optional post-pass models the Compton step beneath peaks.

References:
    M. Morhac et al.: Background elimination methods for multidimensional
    coincidence gamma-ray spectra. NIM A 401 (1997) 113-132.
"""

import logging
from typing import Dict, Optional, Tuple

import numpy as np

from .exceptions import ParameterError
from .spectrum import ArrayLike, as_spectrum, clipped_boxcar_mean
from .utils import VALID_DIRECTIONS, VALID_FILTER_ORDERS, VALID_SMOOTH_WINDOWS

logger = logging.getLogger(__name__)


# order -> (width divisor, ((offset multiplier, weight), ...), denominator)
FILTER_TAPS: Dict[int, Tuple[int, Tuple[Tuple[int, float], ...], float]] = {
    2: (1, ((-1, 1.0), (1, 1.0)), 2.0),
    4: (2, ((-2, -1.0), (-1, 4.0), (1, 4.0), (2, -1.0)), 6.0),
    6: (3, ((-3, 1.0), (-2, -6.0), (-1, 15.0),
            (1, 15.0), (2, -6.0), (3, 1.0)), 20.0),
    8: (4, ((-4, -1.0), (-3, 8.0), (-2, -28.0), (-1, 56.0),
            (1, 56.0), (2, -28.0), (3, 8.0), (4, -1.0)), 70.0),
}


def _clip_sweep(working: np.ndarray,
                width: int,
                filter_order: int,
                smooth_half_window: Optional[int]) -> np.ndarray:
    """
    One clipping pass with a fixed window width.

    All estimates are read from `working` as it was at the start of the
    pass. Returns the new values for channels width..size-width-1.
    """
    size = len(working)
    interior = np.arange(width, size - width)

    if smooth_half_window is None:
        samples = working
    else:
        samples = clipped_boxcar_mean(working, smooth_half_window)

    candidate = None
    for order, (divisor, taps, denominator) in FILTER_TAPS.items():
        if order > filter_order:
            break
        step = width // divisor
        estimate = np.zeros(len(interior))
        for multiplier, weight in taps:
            estimate += weight * samples[interior + multiplier * step]
        estimate /= denominator
        candidate = estimate if candidate is None else np.maximum(candidate, estimate)

    current = working[interior]
    if smooth_half_window is None:
        return np.minimum(current, candidate)

    # Smoothed channels fall back to the local mean when not clipped
    return np.where(candidate < current, candidate, samples[interior])


def snip_clip(counts: np.ndarray,
              number_iterations: int,
              direction: str = 'increasing',
              filter_order: int = 2,
              smooth_half_window: Optional[int] = None) -> np.ndarray:
    """
    Run the SNIP clipping recurrence without parameter validation.

    Parameters:
        counts: Spectrum (not modified)
        number_iterations: Maximal clipping window width
        direction: 'increasing' or 'decreasing' window width
        filter_order: Clipping filter order (2, 4, 6 or 8)
        smooth_half_window: Half width of the local averaging, None to disable

    Returns:
        Clipped background
    """
    working = np.array(counts, dtype=float)
    size = len(working)

    if direction == 'increasing':
        widths = range(1, number_iterations + 1)
    else:
        widths = range(number_iterations, 0, -1)

    for width in widths:
        if size - 2 * width <= 0:
            continue
        working[width:size - width] = _clip_sweep(working, width, filter_order,
                                                  smooth_half_window)

    return working


def compton_edge(counts: np.ndarray, background: np.ndarray) -> np.ndarray:
    """
    Replace peak regions of a background by a Compton-like step.

    Runs of channels where the background differs from the spectrum by at
    least one count are bridged between the background levels on either
    side. The step follows the cumulative peak content, so it rises (or
    falls) where the peak holds its counts.

    Parameters:
        counts: Original spectrum
        background: Clipped background of the same length

    Returns:
        Background with step-shaped bridges
    """
    size = len(counts)
    result = background.copy()
    deviates = np.abs(background - counts) >= 1

    i = 0
    while i < size:
        if not deviates[i]:
            i += 1
            continue

        b1 = max(i - 1, 0)
        yb1 = background[b1]
        b2 = b1 + 1
        found = False
        while not found and b2 < size:
            found = not deviates[b2]
            b2 += 1
        if b2 == size:
            b2 -= 1
        yb2 = background[b2]

        # Equal levels interpolate left to right
        if yb1 <= yb2:
            span = np.arange(b1, b2 + 1)
            low, high = yb1, yb2
        else:
            span = np.arange(b2, b1 - 1, -1)
            low, high = yb2, yb1

        excess = np.cumsum(counts[span] - low)
        if excess[-1] > 1:
            result[span] = (high - low) / excess[-1] * excess + low

        i = b2 + 1

    return result


def estimate_background(spectrum: ArrayLike,
                        number_iterations: int,
                        direction: str = 'increasing',
                        filter_order: int = 2,
                        smoothing: bool = False,
                        smooth_window: int = 3,
                        compton: bool = False) -> np.ndarray:
    """
    Estimate the background of a spectrum with SNIP clipping.

    Parameters:
        spectrum: Source spectrum
        number_iterations: Maximal width of the clipping window
        direction: 'increasing' or 'decreasing' change of the window width
        filter_order: Order of the clipping filter (2, 4, 6 or 8)
        smoothing: Whether to average samples over a local window
        smooth_window: Width of the local window (odd, 3 to 15)
        compton: Whether to estimate the Compton edge

    Returns:
        Background spectrum of the same length

    Raises:
        ParameterError: If parameters are invalid
    """
    counts = as_spectrum(spectrum)
    size = len(counts)

    if number_iterations < 1:
        raise ParameterError("Width of clipping window must be positive")
    if size < 2 * number_iterations + 1:
        raise ParameterError(
            f"Too large clipping window: {number_iterations} for {size} channels")
    if direction not in VALID_DIRECTIONS:
        raise ParameterError(f"direction must be one of {VALID_DIRECTIONS}")
    if filter_order not in VALID_FILTER_ORDERS:
        raise ParameterError(f"filter_order must be one of {VALID_FILTER_ORDERS}")
    if smoothing and smooth_window not in VALID_SMOOTH_WINDOWS:
        raise ParameterError("Incorrect width of smoothing window")

    logger.debug("SNIP background: %d channels, window %d (%s), order %d, "
                 "smoothing=%s/%d, compton=%s", size, number_iterations, direction,
                 filter_order, smoothing, smooth_window, compton)

    half_window = (smooth_window - 1) // 2 if smoothing else None
    background = snip_clip(counts, number_iterations, direction, filter_order, half_window)

    if compton:
        background = compton_edge(counts, background)

    return background

"""
High-resolution peak search for gamma spectra.

The search combines the other processing steps:

1. the spectrum is extended on both sides by the clipping window width
2. the background is removed by SNIP clipping (optional)
3. the trace is smoothed with Markov chains (optional)
4. the trace is deconvolved with a Gaussian response of the given sigma
5. local maxima of the deconvolved trace that pass both amplitude
   thresholds are refined to centroids and ranked by amplitude

References:
    M. Morhac et al.: Identification of peaks in multidimensional
    coincidence gamma-ray spectra. NIM A 443 (2000) 108-125.
"""

import bisect
import logging
import warnings
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple

import numpy as np
from scipy.signal import argrelmax

from .background import snip_clip
from .deconvolution import gaussian_response
from .exceptions import ParameterError, PeakBufferFullWarning
from .smoothing import smooth_markov
from .spectrum import ArrayLike, ResponseKernel, SpectrumBuffer, as_spectrum, low_edge_slope
from .utils import DEFAULT_AVERAGE_WINDOW, DEFAULT_DECON_ITERATIONS, PEAK_WINDOW

logger = logging.getLogger(__name__)

# Channels below this level are left out of a deconvolution update
SEARCH_EPSILON = 1e-5

# Half width of the local averaging used by the Markov-weighted clipping
MARKOV_CLIP_HALF_WINDOW = 2


class PeakList:
    """
    Bounded list of peak positions ranked by descending amplitude.

    A new peak is placed after existing peaks of equal amplitude. Once the
    list holds `capacity` entries, peaks ranking below all of them are
    dropped and a better peak pushes out the last entry.
    """

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ParameterError("Peak list capacity must be positive")
        self.capacity = capacity
        self._positions: List[float] = []
        self._keys: List[float] = []

    def insert(self, position: float, amplitude: float) -> bool:
        """
        Insert a peak.

        Returns:
            False if the peak ranked below a full list and was dropped
        """
        index = bisect.bisect_right(self._keys, -amplitude)
        if index >= self.capacity:
            return False

        self._keys.insert(index, -amplitude)
        self._positions.insert(index, position)
        if len(self._keys) > self.capacity:
            self._keys.pop()
            self._positions.pop()
        return True

    @property
    def full(self) -> bool:
        return len(self._positions) >= self.capacity

    @property
    def positions(self) -> List[float]:
        return list(self._positions)

    @property
    def amplitudes(self) -> List[float]:
        return [-key for key in self._keys]

    def __len__(self) -> int:
        return len(self._positions)

    def __iter__(self) -> Iterator[Tuple[float, float]]:
        return iter(zip(self.positions, self.amplitudes))


@dataclass
class SearchResult:
    """
    Output of the high-resolution peak search.

    Attributes:
        deconvolved: Deconvolved spectrum, same length as the source
        positions: 1-based peak channels, highest peak first
        centroids: 0-based fractional peak channels, same order
        amplitudes: Background-subtracted amplitude of each peak
        buffer_full: Whether the peak list reached its capacity
    """
    deconvolved: np.ndarray
    positions: np.ndarray = field(default_factory=lambda: np.array([], dtype=int))
    centroids: np.ndarray = field(default_factory=lambda: np.array([], dtype=float))
    amplitudes: np.ndarray = field(default_factory=lambda: np.array([], dtype=float))
    buffer_full: bool = False

    @property
    def n_peaks(self) -> int:
        return len(self.positions)

    def to_records(self) -> List[dict]:
        """Peak table as a list of dictionaries."""
        return [
            {
                'rank': rank,
                'position': int(position),
                'centroid': float(centroid),
                'amplitude': float(amplitude),
            }
            for rank, (position, centroid, amplitude) in enumerate(
                zip(self.positions, self.centroids, self.amplitudes), 1)
        ]


def _deconvolve_search_trace(trace: np.ndarray,
                             kernel: ResponseKernel,
                             iterations: int) -> np.ndarray:
    """
    Gold iterations restricted to the causal/anticausal response support.

    Returns the estimate before the peak shift.
    """
    size = len(trace)
    h = kernel.head
    lead = kernel.support - 1

    autocorrelation = np.correlate(h, h, mode='full')
    target = np.correlate(trace, h, mode='full')[:size]

    estimate = np.ones(size)
    updated = np.zeros(size)
    for _ in range(iterations):
        denominator = np.convolve(estimate, autocorrelation)[lead:lead + size]
        ratio = np.divide(target, denominator, out=np.zeros(size), where=denominator != 0)
        active = (np.abs(target) > SEARCH_EPSILON) & (np.abs(estimate) > SEARCH_EPSILON)
        updated[active] = ratio[active] * estimate[active]
        estimate = updated.copy()

    return estimate


def search_high_res(source: ArrayLike,
                    sigma: float,
                    threshold: float = 10.0,
                    background_remove: bool = True,
                    decon_iterations: int = DEFAULT_DECON_ITERATIONS,
                    markov: bool = False,
                    aver_window: int = DEFAULT_AVERAGE_WINDOW,
                    max_peaks: Optional[int] = None) -> SearchResult:
    """
    Search for peaks using background removal, smoothing and deconvolution.

    Parameters:
        source: Source spectrum
        sigma: Sigma of searched peaks in channels (>= 1)
        threshold: Peaks with amplitude below threshold % of the highest
            peak are ignored (0 < threshold < 100)
        background_remove: Whether to remove the background first
        decon_iterations: Number of deconvolution iterations
        markov: Whether to smooth the trace with Markov chains first
        aver_window: Averaging window of the Markov smoothing
        max_peaks: Capacity of the peak list (default: spectrum length)

    Returns:
        SearchResult with the deconvolved spectrum and ranked peaks

    Raises:
        ParameterError: If parameters are invalid
    """
    counts = as_spectrum(source)
    size = len(counts)

    if sigma < 1:
        raise ParameterError("Invalid sigma, must be greater than or equal to 1")
    if threshold <= 0 or threshold >= 100:
        raise ParameterError("Invalid threshold, must be positive and less than 100")
    if int(5.0 * sigma + 0.5) >= PEAK_WINDOW // 2:
        raise ParameterError("Too large sigma")
    if markov and aver_window <= 0:
        raise ParameterError("Averaging window must be positive")
    if decon_iterations < 0:
        raise ParameterError("Number of deconvolution iterations must not be negative")

    number_iterations = int(7 * sigma + 0.5)
    if background_remove and size < 2 * number_iterations + 1:
        raise ParameterError(
            f"Too large clipping window: {number_iterations} for {size} channels")

    capacity = size if max_peaks is None else max_peaks
    peak_list = PeakList(capacity)

    slope = low_edge_slope(counts, int(2 * sigma + 0.5))
    buffer = SpectrumBuffer(counts, pad=number_iterations, slope=slope)
    raw = buffer.extended()
    shift = buffer.pad
    size_ext = buffer.extended_size

    logger.debug("High-resolution search: %d channels (+%d each side), sigma=%.2f, "
                 "threshold=%.2f%%, background=%s, markov=%s", size, shift, sigma,
                 threshold, background_remove, markov)

    processed = raw.copy()
    if background_remove:
        background = snip_clip(raw, number_iterations,
                               smooth_half_window=MARKOV_CLIP_HALF_WINDOW if markov else None)
        processed = np.maximum(raw - background, 0.0)

    # Amplitude gate and ranking use the trace before Markov smoothing
    reference = processed.copy()

    if markov:
        if np.max(processed) <= 0:
            logger.warning("Nothing left to smooth after background removal")
            return SearchResult(deconvolved=np.zeros(size))
        smoothed = smooth_markov(processed, aver_window)
        processed = smoothed
        if background_remove:
            processed = smoothed - snip_clip(smoothed, number_iterations)

    kernel = ResponseKernel.from_values(gaussian_response(size_ext, sigma))
    estimate = _deconvolve_search_trace(np.abs(processed), kernel, decon_iterations)

    shifted = np.roll(estimate, kernel.peak_position)
    lead = kernel.support - 1
    deconvolved = np.zeros(size_ext)
    tail = shifted[shift + lead:shift + lead + size]
    deconvolved[shift:shift + len(tail)] = kernel.area * tail

    written = slice(shift, shift + len(tail))
    maximum_decon = float(np.max(deconvolved[written], initial=0.0))
    maximum = float(np.max(reference[written], initial=0.0))
    decon_gate = min(1.0, threshold) / 100.0 * maximum_decon
    amplitude_gate = threshold * maximum / 100.0

    for i in argrelmax(deconvolved)[0]:
        if not shift <= i < size + shift:
            continue
        if deconvolved[i] <= decon_gate or reference[i] <= amplitude_gate:
            continue

        window = deconvolved[i - 1:i + 2]
        centroid = float(np.dot(np.arange(i - 1, i + 2) - shift, window) / np.sum(window))
        if centroid < 0:
            centroid = 0.0
        if centroid >= size:
            centroid = float(size - 1)

        peak_list.insert(centroid, reference[shift + int(centroid)])

    if peak_list.full:
        warnings.warn("Peak buffer full", PeakBufferFullWarning)
        logger.warning("Peak buffer full (%d peaks)", peak_list.capacity)

    centroids = np.array(peak_list.positions, dtype=float)
    logger.debug("Found %d peaks", len(centroids))

    return SearchResult(deconvolved=buffer.trim(deconvolved),
                        positions=centroids.astype(int) + 1,
                        centroids=centroids,
                        amplitudes=np.array(peak_list.amplitudes, dtype=float),
                        buffer_full=peak_list.full)

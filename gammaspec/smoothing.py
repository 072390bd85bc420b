"""
Markov chain smoothing of gamma spectra.

The normalized spectrum defines the transition probabilities of a random
walk over the channels. The stationary distribution of that walk is a
smoothed version of the spectrum; it is rescaled to the original area.
"""

import logging

import numpy as np

from .exceptions import ParameterError
from .spectrum import ArrayLike, as_spectrum
from .utils import DEFAULT_AVERAGE_WINDOW

logger = logging.getLogger(__name__)


def _transition_weight(neighbour: np.ndarray, origin: np.ndarray) -> np.ndarray:
    """exp((a - b) / sqrt(a + b)), with divisor 1 where a + b <= 0."""
    total = neighbour + origin
    divisor = np.ones_like(total)
    positive = total > 0
    divisor[positive] = np.sqrt(total[positive])
    return np.exp((neighbour - origin) / divisor)


def smooth_markov(spectrum: ArrayLike, aver_window: int = DEFAULT_AVERAGE_WINDOW) -> np.ndarray:
    """
    Smooth a spectrum with the Markov chain method.

    Parameters:
        spectrum: Source spectrum
        aver_window: Number of neighbours averaged on each side

    Returns:
        Smoothed spectrum with the same sum as the input. A spectrum
        without positive content gives an all-zero result.

    Raises:
        ParameterError: If aver_window is not positive
    """
    if aver_window <= 0:
        raise ParameterError("Averaging window must be positive")

    source = as_spectrum(spectrum)
    size = len(source)
    maximum = max(float(np.max(source)), 0.0)

    if maximum == 0:
        logger.warning("Markov smoothing of a spectrum without positive content")
        return np.zeros(size)

    area = float(np.sum(source))
    normalized = source / maximum
    last = size - 1

    steps = np.arange(last)
    forward = np.zeros(last)
    backward = np.zeros(last)
    for offset in range(1, aver_window + 1):
        ahead = normalized[np.minimum(steps + offset, last)]
        forward += _transition_weight(ahead, normalized[:-1])
        behind = normalized[np.maximum(steps - offset + 1, 0)]
        backward += _transition_weight(behind, normalized[1:])

    probability = np.empty(size)
    probability[0] = 1.0
    probability[1:] = np.cumprod(forward / backward)
    probability /= np.sum(probability)

    return probability * area

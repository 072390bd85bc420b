"""
Iterative deconvolution and unfolding of gamma spectra.

This module provides multiplicative iterative methods that invert detector
broadening:

- Gold deconvolution against a single response vector
- Richardson-Lucy deconvolution restricted to the valid convolution range
- unfolding against a full response matrix

All methods support boosted repetitions: after the first block of
iterations the estimate is raised to the power `boost` before the next
block, which sharpens the solution.

References:
    M. Morhac et al.: Efficient one- and two-dimensional Gold deconvolution
    and its application to gamma-ray spectra decomposition.
    NIM A 401 (1997) 385-408.
"""

import logging
from typing import Optional, Tuple

import numpy as np

from .exceptions import ParameterError, DegenerateInputError
from .spectrum import ArrayLike, ResponseKernel, as_spectrum

logger = logging.getLogger(__name__)

# Channels below this level are left out of a Gold update
GOLD_EPSILON = 1e-6


def gaussian_response(size: int, sigma: float, center: Optional[float] = None,
                      scale: float = 1000.0) -> np.ndarray:
    """
    Gaussian response vector quantized to whole units.

    Parameters:
        size: Length of the response vector
        sigma: Gaussian sigma in channels
        center: Peak channel (default 3*sigma, so the response is causal)
        scale: Height of the peak before truncation

    Returns:
        Response values truncated to integers
    """
    if center is None:
        center = 3 * sigma
    channels = np.arange(size, dtype=float)
    exponent = (channels - center) ** 2 / (2 * sigma * sigma)
    return np.floor(scale * np.exp(-exponent))


def _check_deconvolution_inputs(source: ArrayLike, response: ArrayLike,
                                number_iterations: int,
                                number_repetitions: int) -> Tuple[np.ndarray, ResponseKernel]:
    counts = as_spectrum(source, name='source')
    kernel = ResponseKernel.from_values(response)

    if len(kernel.values) != len(counts):
        raise ParameterError(
            f"Source and response must have equal length "
            f"({len(counts)} != {len(kernel.values)})")
    if number_repetitions <= 0:
        raise ParameterError("Number of repetitions must be positive")
    if number_iterations < 0:
        raise ParameterError("Number of iterations must not be negative")

    return counts, kernel


def deconvolve_gold(source: ArrayLike,
                    response: ArrayLike,
                    number_iterations: int,
                    number_repetitions: int = 1,
                    boost: float = 1.0) -> np.ndarray:
    """
    Deconvolve a spectrum with the Gold algorithm.

    The normal equations A'A x = A'y are solved with the multiplicative
    update x <- x * A'y / (A'A x). The result is scaled by the response area
    and shifted so that the response maximum maps to channel 0.

    Parameters:
        source: Source spectrum
        response: Response vector of the same length
        number_iterations: Iterations per repetition
        number_repetitions: Number of boosted repetitions
        boost: Boosting exponent applied between repetitions

    Returns:
        Deconvolved spectrum

    Raises:
        ParameterError: If sizes or counts are invalid
        DegenerateInputError: If the response is all zeros
    """
    counts, kernel = _check_deconvolution_inputs(source, response,
                                                 number_iterations, number_repetitions)
    size = len(counts)
    support = kernel.support
    h = kernel.values

    # Autocorrelation of the response (A'A is Toeplitz) and A'y
    toeplitz = np.array([np.dot(h[:size - k], h[k:]) for k in range(support)])
    aty = np.zeros(size)
    for lag in range(support):
        aty[:size - lag] += h[lag] * counts[lag:]

    symmetric = np.concatenate([toeplitz[:0:-1], toeplitz])
    lead = support - 1

    logger.debug("Gold deconvolution: %d channels, support %d, %d x %d iterations",
                 size, support, number_repetitions, number_iterations)

    estimate = np.ones(size)
    # Channels skipped by the guard keep whatever this buffer holds
    updated = aty.copy()
    for repetition in range(number_repetitions):
        if repetition != 0:
            estimate = np.power(estimate, boost)
        for _ in range(number_iterations):
            denominator = np.convolve(estimate, symmetric)[lead:lead + size]
            ratio = np.divide(aty, denominator, out=np.zeros(size),
                              where=denominator != 0)
            active = (aty > GOLD_EPSILON) & (estimate > GOLD_EPSILON)
            updated[active] = ratio[active] * estimate[active]
            estimate = updated.copy()

    return np.roll(estimate * kernel.area, kernel.peak_position)


def deconvolve_richardson_lucy(source: ArrayLike,
                               response: ArrayLike,
                               number_iterations: int,
                               number_repetitions: int = 1,
                               boost: float = 1.0) -> np.ndarray:
    """
    Deconvolve a spectrum with the Richardson-Lucy algorithm.

    Only channels 0..size-support take part in the estimate, so the model
    never wraps around the end of the spectrum. The result is shifted so that
    the response maximum maps to channel 0; it is not scaled.

    Parameters:
        source: Source spectrum
        response: Response vector of the same length
        number_iterations: Iterations per repetition
        number_repetitions: Number of boosted repetitions
        boost: Boosting exponent applied between repetitions

    Returns:
        Deconvolved spectrum

    Raises:
        ParameterError: If sizes or counts are invalid
        DegenerateInputError: If the response is all zeros
    """
    counts, kernel = _check_deconvolution_inputs(source, response,
                                                 number_iterations, number_repetitions)
    size = len(counts)
    h = kernel.head
    valid = size - kernel.support + 1
    positive = counts > 0

    logger.debug("Richardson-Lucy deconvolution: %d channels, support %d, %d x %d iterations",
                 size, kernel.support, number_repetitions, number_iterations)

    estimate = np.zeros(size)
    estimate[:valid] = 1.0
    for repetition in range(number_repetitions):
        if repetition != 0:
            estimate = np.power(estimate, boost)
        for _ in range(number_iterations):
            model = np.convolve(estimate, h)[:size]
            ratio = np.divide(counts, model, out=np.zeros(size), where=model > 0)
            ratio = np.where(positive, ratio, counts)
            correction = np.correlate(ratio, h, mode='valid')

            head = estimate[:valid]
            estimate = np.zeros(size)
            estimate[:valid] = np.where(head > 0, correction * head, 0.0)

    return np.roll(estimate, kernel.peak_position)


def unfold(source: ArrayLike,
           response_matrix: ArrayLike,
           number_iterations: int,
           number_repetitions: int = 1,
           boost: float = 1.0) -> np.ndarray:
    """
    Unfold a spectrum according to a response matrix.

    Row j of the matrix is the response of output channel j over the
    source channels. Rows are normalized to unit area; the doubly normal
    system (A'A)'(A'A) x = (A'A)'A'y is then solved with Gold iterations.

    Parameters:
        source: Source spectrum of length ssizex
        response_matrix: Matrix with ssizey rows and ssizex columns
        number_iterations: Iterations per repetition
        number_repetitions: Number of boosted repetitions
        boost: Boosting exponent applied between repetitions

    Returns:
        Array of length ssizex; the first ssizey entries hold the unfolded
        spectrum, the rest are zero

    Raises:
        ParameterError: If dimensions or counts are invalid
        DegenerateInputError: If a response has no non-zero entry
    """
    counts = as_spectrum(source, name='source')
    matrix = np.array(response_matrix, dtype=float)

    if matrix.ndim != 2 or matrix.shape[0] == 0 or matrix.shape[1] == 0:
        raise ParameterError("Response matrix must be a non-empty 2-D table")
    ssizey, ssizex = matrix.shape
    if ssizex < ssizey:
        raise ParameterError(
            f"Source size must be greater than or equal to destination size "
            f"({ssizex} < {ssizey})")
    if len(counts) != ssizex:
        raise ParameterError(
            f"Source length {len(counts)} does not match {ssizex} matrix columns")
    if number_iterations <= 0:
        raise ParameterError("Number of iterations must be positive")
    if number_repetitions <= 0:
        raise ParameterError("Number of repetitions must be positive")

    empty = np.flatnonzero(~np.any(matrix != 0, axis=1))
    if len(empty):
        raise DegenerateInputError(f"Zero column in response matrix (channel {empty[0]})")

    normalized = matrix / matrix.sum(axis=1)[:, np.newaxis]

    ata = normalized @ normalized.T
    aty = normalized @ counts
    system = ata @ ata.T
    target = ata @ aty

    logger.debug("Unfolding %d -> %d channels, %d x %d iterations",
                 ssizex, ssizey, number_repetitions, number_iterations)

    estimate = np.ones(ssizey)
    for repetition in range(number_repetitions):
        if repetition != 0:
            estimate = np.power(estimate, boost)
        for _ in range(number_iterations):
            denominator = system @ estimate
            ratio = np.divide(target, denominator, out=np.zeros(ssizey),
                              where=denominator != 0)
            estimate = ratio * estimate

    result = np.zeros(ssizex)
    result[:ssizey] = estimate
    return result

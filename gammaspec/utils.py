"""
Utility functions for gamma spectrum processing.

This module provides helper functions for logging, configuration defaults
and validation, and synthetic spectra used by examples and tests.
"""

import copy
import logging
import sys
from typing import Dict, List, Any, Optional, Tuple

import numpy as np

from .exceptions import ParameterError


# Default averaging window of the Markov smoothing
DEFAULT_AVERAGE_WINDOW = 3

# Default number of deconvolution iterations in the peak search
DEFAULT_DECON_ITERATIONS = 3

# Upper limit for 5*sigma is PEAK_WINDOW / 2
PEAK_WINDOW = 1024

VALID_DIRECTIONS = ('increasing', 'decreasing')
VALID_FILTER_ORDERS = (2, 4, 6, 8)
VALID_SMOOTH_WINDOWS = (3, 5, 7, 9, 11, 13, 15)


DEFAULT_CONFIG: Dict[str, Any] = {
    'background': {
        'iterations': 20,
        'direction': 'increasing',
        'filter_order': 2,
        'smoothing': False,
        'smooth_window': 3,
        'compton': False,
    },
    'search': {
        'sigma': 2.0,
        'threshold': 5.0,
        'background_remove': True,
        'iterations': DEFAULT_DECON_ITERATIONS,
        'markov': False,
        'aver_window': DEFAULT_AVERAGE_WINDOW,
        'max_peaks': None,
    },
    'output': {
        'directory': '.',
        'prefix': '',
        'generate_plot': True,
        'plot_format': 'png',
        'dpi': 150,
    },
}


def setup_logger(name: str = 'gammaspec',
                 level: int = logging.INFO,
                 log_file: Optional[str] = None) -> logging.Logger:
    """
    Setup logger with console and optional file output.

    Parameters:
        name: Logger name
        level: Logging level
        log_file: Optional log file path

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers = []

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def merge_config(base: Dict[str, Any], override: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Merge two configuration dictionaries section by section.

    Values in `override` win; `None` values are ignored so that unset
    command line options do not mask file settings.

    Parameters:
        base: Base configuration
        override: Overriding configuration

    Returns:
        New merged configuration dictionary
    """
    merged = copy.deepcopy(base)
    if not override:
        return merged

    for key, value in override.items():
        if value is None:
            continue
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key].update({k: v for k, v in value.items() if v is not None})
        else:
            merged[key] = copy.deepcopy(value)

    return merged


def validate_parameters(config: Dict[str, Any]) -> bool:
    """
    Validate processing parameters.

    Parameters:
        config: Configuration dictionary

    Returns:
        True if valid

    Raises:
        ParameterError: If parameters are invalid
    """
    background = config.get('background', {})

    if background.get('iterations', 1) < 1:
        raise ParameterError("background iterations must be at least 1")

    if background.get('direction', 'increasing') not in VALID_DIRECTIONS:
        raise ParameterError(f"background direction must be one of {VALID_DIRECTIONS}")

    if background.get('filter_order', 2) not in VALID_FILTER_ORDERS:
        raise ParameterError(f"filter_order must be one of {VALID_FILTER_ORDERS}")

    if background.get('smoothing', False) and \
            background.get('smooth_window', 3) not in VALID_SMOOTH_WINDOWS:
        raise ParameterError(f"smooth_window must be one of {VALID_SMOOTH_WINDOWS}")

    search = config.get('search', {})

    if search.get('sigma', 1.0) < 1:
        raise ParameterError("sigma must be greater than or equal to 1")

    threshold = search.get('threshold', 5.0)
    if threshold <= 0 or threshold >= 100:
        raise ParameterError("threshold must be positive and less than 100")

    if search.get('iterations', DEFAULT_DECON_ITERATIONS) < 0:
        raise ParameterError("deconvolution iterations must not be negative")

    if search.get('markov', False) and search.get('aver_window', DEFAULT_AVERAGE_WINDOW) <= 0:
        raise ParameterError("aver_window must be positive")

    max_peaks = search.get('max_peaks')
    if max_peaks is not None and max_peaks <= 0:
        raise ParameterError("max_peaks must be positive")

    output = config.get('output', {})

    if output.get('plot_format', 'png') not in ('png', 'pdf', 'svg'):
        raise ParameterError("plot_format must be one of ('png', 'pdf', 'svg')")

    if output.get('dpi', 150) <= 0:
        raise ParameterError("dpi must be positive")

    return True


def generate_synthetic_spectrum(num_channels: int = 1024,
                                peaks: Optional[List[Tuple[float, float, float]]] = None,
                                background_level: float = 10.0,
                                background_decay: Optional[float] = None,
                                poisson_noise: bool = True,
                                seed: Optional[int] = None) -> Tuple[np.ndarray, np.ndarray]:
    """
    Generate synthetic gamma spectrum for testing.

    Parameters:
        num_channels: Number of channels
        peaks: List of (channel, amplitude, sigma) tuples
        background_level: Continuum level at channel 0
        background_decay: Exponential decay length of the continuum in
            channels (None for a flat continuum)
        poisson_noise: Whether to draw Poisson counts from the model
        seed: Random seed for reproducibility

    Returns:
        Tuple of (channels, counts)
    """
    if seed is not None:
        np.random.seed(seed)

    channels = np.arange(num_channels)

    if background_decay:
        counts = background_level * np.exp(-channels / background_decay)
    else:
        counts = np.full(num_channels, float(background_level))

    if peaks is None:
        peaks = [
            (num_channels * 0.2, 1000, 3),
            (num_channels * 0.45, 500, 4),
            (num_channels * 0.7, 250, 5),
        ]

    for channel, amplitude, sigma in peaks:
        if 0 <= channel < num_channels:
            counts = counts + amplitude * np.exp(-0.5 * ((channels - channel) / sigma) ** 2)

    if poisson_noise:
        counts = np.random.poisson(np.maximum(counts, 0))

    return channels.astype(float), counts.astype(float)

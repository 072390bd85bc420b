"""
Test suite for GammaSpec package.

This module contains unit tests and integration tests for the
gammaspec package.
"""

import sys
from pathlib import Path

import numpy as np

# Add parent directory to path for imports
parent_dir = Path(__file__).parent.parent
sys.path.insert(0, str(parent_dir))


def two_peak_spectrum(num_channels: int = 512,
                      background_level: float = 10.0) -> np.ndarray:
    """Noise-free spectrum with peaks at channels 100 and 300 (sigma 3)."""
    channels = np.arange(num_channels)
    counts = np.full(num_channels, background_level)
    for center, amplitude in ((100, 1000.0), (300, 500.0)):
        counts = counts + amplitude * np.exp(-0.5 * ((channels - center) / 3.0) ** 2)
    return counts

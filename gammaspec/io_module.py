"""
Input/Output operations for gamma spectroscopy data.

This module handles reading spectrum and response matrix files and saving
results. Supported spectrum formats: CSV, SPE, CHN, MCA.
"""

import json
import logging
import struct
from pathlib import Path
from typing import Tuple, Dict, Any, Optional

import numpy as np
import pandas as pd

from .search import SearchResult

logger = logging.getLogger(__name__)

# Commas, semicolons or whitespace between columns
SEPARATORS = r'[,;\s]+'


def load_spectrum(filepath: str) -> Tuple[np.ndarray, np.ndarray]:
    """
    Load spectrum from file with automatic format detection.

    Parameters:
        filepath: Path to spectrum file

    Returns:
        tuple: (channels, counts) as numpy arrays

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If file format is not supported or data is invalid
    """
    filepath = Path(filepath)

    if not filepath.exists():
        raise FileNotFoundError(f"Spectrum file not found: {filepath}")

    extension = filepath.suffix.lower()
    logger.debug("Loading %s as '%s'", filepath, extension or 'csv')

    if extension in ['.csv', '.txt', '.dat']:
        return load_csv_spectrum(filepath)
    elif extension == '.spe':
        return load_spe_spectrum(filepath)
    elif extension == '.chn':
        return load_chn_spectrum(filepath)
    elif extension == '.mca':
        return load_mca_spectrum(filepath)
    else:
        # Unknown extensions are tried as CSV
        try:
            return load_csv_spectrum(filepath)
        except ValueError:
            raise ValueError(f"Unsupported file format: {extension}")


def _clamp_negative(counts: np.ndarray, filepath: Path) -> np.ndarray:
    if np.any(counts < 0):
        logger.warning("Negative counts detected in %s, setting to zero", filepath)
        counts = np.maximum(counts, 0)
    return counts


def load_csv_spectrum(filepath: Path) -> Tuple[np.ndarray, np.ndarray]:
    """
    Load spectrum from CSV file.

    Expected format: one column (counts) or two columns (channel, counts).
    Lines starting with '#' are ignored; a header row is skipped.

    Parameters:
        filepath: Path to CSV file

    Returns:
        tuple: (channels, counts) arrays
    """
    try:
        data = pd.read_csv(filepath, header=None, comment='#', sep=SEPARATORS, engine='python')

        # Drop a text header row and empty edge columns
        data = data.apply(pd.to_numeric, errors='coerce').dropna(how='all')
        data = data.dropna(axis=1, how='all')

        if data.empty:
            raise ValueError("No numeric data in spectrum file")

        if data.shape[1] < 2:
            counts = data.iloc[:, 0].values
            channels = np.arange(len(counts))
        else:
            channels = data.iloc[:, 0].values
            counts = data.iloc[:, 1].values

        channels = channels.astype(float)
        counts = counts.astype(float)

        if np.any(np.isnan(counts)):
            raise ValueError("Non-numeric count values")

        return channels, _clamp_negative(counts, filepath)

    except (pd.errors.ParserError, pd.errors.EmptyDataError, ValueError) as e:
        raise ValueError(f"Error reading CSV file: {e}")


def load_spe_spectrum(filepath: Path) -> Tuple[np.ndarray, np.ndarray]:
    """
    Load spectrum from IAEA SPE format file.

    Parameters:
        filepath: Path to SPE file

    Returns:
        tuple: (channels, counts) arrays
    """
    try:
        with open(filepath, 'r') as f:
            lines = f.readlines()
    except OSError as e:
        raise ValueError(f"Error reading SPE file: {e}")

    in_data_section = False
    skip_range = False
    counts_list = []
    start_channel = 0

    for line in lines:
        line = line.strip()

        if line.startswith('$DATA'):
            in_data_section = True
            skip_range = True
            continue

        if not in_data_section:
            continue

        if line.startswith('$'):
            break

        if skip_range:
            # "first_channel last_channel"
            skip_range = False
            data_range = line.split()
            if len(data_range) == 2:
                start_channel = int(data_range[0])
                continue

        try:
            counts_list.extend(float(value) for value in line.split())
        except ValueError:
            continue

    if not counts_list:
        raise ValueError(f"Error reading SPE file: no data found in {filepath}")

    counts = np.array(counts_list)
    channels = np.arange(start_channel, start_channel + len(counts), dtype=float)

    return channels, _clamp_negative(counts, filepath)


def load_chn_spectrum(filepath: Path) -> Tuple[np.ndarray, np.ndarray]:
    """
    Load spectrum from Ortec CHN format file.

    The 32 byte header holds the first channel (bytes 28-29) and the
    number of channels (bytes 30-31), followed by one 32-bit count per
    channel.

    Parameters:
        filepath: Path to CHN file

    Returns:
        tuple: (channels, counts) arrays
    """
    try:
        with open(filepath, 'rb') as f:
            header = f.read(32)
            if len(header) < 32:
                raise ValueError("Truncated header")

            start_channel, num_channels = struct.unpack('<HH', header[28:32])
            payload = f.read(4 * num_channels)

        if len(payload) < 4 * num_channels:
            raise ValueError(f"Expected {num_channels} channels")

        counts = np.frombuffer(payload, dtype='<u4').astype(float)

    except (OSError, struct.error, ValueError) as e:
        raise ValueError(f"Error reading CHN file: {e}")

    channels = np.arange(start_channel, start_channel + len(counts), dtype=float)
    return channels, counts


def load_mca_spectrum(filepath: Path) -> Tuple[np.ndarray, np.ndarray]:
    """
    Load spectrum from MCA format file.

    Parameters:
        filepath: Path to MCA file

    Returns:
        tuple: (channels, counts) arrays
    """
    try:
        with open(filepath, 'r') as f:
            lines = f.readlines()
    except OSError as e:
        raise ValueError(f"Error reading MCA file: {e}")

    in_data_section = False
    counts_list = []

    for line in lines:
        line = line.strip()

        if line == '<<DATA>>':
            in_data_section = True
            continue

        if line == '<<END>>':
            break

        if in_data_section and line:
            try:
                counts_list.append(float(line))
            except ValueError:
                continue

    if not counts_list:
        raise ValueError(f"Error reading MCA file: no data found in {filepath}")

    counts = np.array(counts_list)
    channels = np.arange(len(counts), dtype=float)

    return channels, _clamp_negative(counts, filepath)


def load_response_matrix(filepath: str) -> np.ndarray:
    """
    Load a response matrix for unfolding.

    Each row is the response of one output channel over the source
    channels. Values may be separated by commas or whitespace.

    Parameters:
        filepath: Path to matrix file

    Returns:
        2-D array with one row per output channel

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If the file does not hold a numeric table
    """
    filepath = Path(filepath)

    if not filepath.exists():
        raise FileNotFoundError(f"Response matrix file not found: {filepath}")

    try:
        data = pd.read_csv(filepath, header=None, comment='#', sep=SEPARATORS, engine='python')
        data = data.dropna(axis=1, how='all')
        matrix = data.apply(pd.to_numeric, errors='raise').to_numpy(dtype=float)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, ValueError) as e:
        raise ValueError(f"Error reading response matrix: {e}")

    if np.any(np.isnan(matrix)):
        raise ValueError("Error reading response matrix: rows have unequal length")

    logger.debug("Loaded %d x %d response matrix from %s", matrix.shape[0], matrix.shape[1], filepath)
    return matrix


def save_peaks(result: SearchResult, filepath: str, format: str = 'csv'):
    """
    Save peaks found by the high-resolution search.

    Parameters:
        result: Search result
        filepath: Output file path
        format: Output format ('csv', 'json', 'txt')
    """
    filepath = Path(filepath)
    records = result.to_records()

    if format == 'csv':
        df = pd.DataFrame(records, columns=['rank', 'position', 'centroid', 'amplitude'])
        df.to_csv(filepath, index=False)
    elif format == 'json':
        with open(filepath, 'w') as f:
            json.dump({'peaks': records, 'buffer_full': result.buffer_full}, f, indent=2)
    elif format == 'txt':
        with open(filepath, 'w') as f:
            f.write("# Peak Search Results\n")
            f.write("#" + "=" * 46 + "\n")
            f.write(f"# {'Rank':<5} {'Channel':<9} {'Centroid':<12} {'Amplitude':<12}\n")
            f.write("#" + "-" * 46 + "\n")

            for peak in records:
                f.write(f"{peak['rank']:<6} {peak['position']:<9d} {peak['centroid']:<12.2f} "
                        f"{peak['amplitude']:<12.1f}\n")
    else:
        raise ValueError(f"Unsupported output format: {format}")

    logger.debug("Saved %d peaks to %s", len(records), filepath)


def load_config(filepath: str) -> Dict[str, Any]:
    """
    Load configuration from JSON file.

    Parameters:
        filepath: Path to configuration file

    Returns:
        dict: Configuration dictionary
    """
    filepath = Path(filepath)

    if not filepath.exists():
        raise FileNotFoundError(f"Configuration file not found: {filepath}")

    try:
        with open(filepath, 'r') as f:
            config = json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in configuration file: {e}")

    if not isinstance(config, dict):
        raise ValueError("Configuration file must hold a JSON object")
    return config


def save_config(config: Dict[str, Any], filepath: str):
    """
    Save configuration to JSON file.

    Parameters:
        config: Configuration dictionary
        filepath: Output file path
    """
    with open(Path(filepath), 'w') as f:
        json.dump(config, f, indent=2)


def export_spectrum(channels: np.ndarray, counts: np.ndarray,
                    filepath: str, format: str = 'csv',
                    metadata: Optional[Dict] = None,
                    columns: Optional[Dict[str, np.ndarray]] = None):
    """
    Export spectrum data to file.

    Parameters:
        channels: Channel numbers
        counts: Count data
        filepath: Output file path
        format: Output format ('csv', 'txt', 'spe')
        metadata: Optional metadata written as comments ('txt' only)
        columns: Optional extra traces, e.g. background or deconvolved
            spectrum ('csv' and 'txt' only)
    """
    filepath = Path(filepath)
    table = {'channel': channels, 'counts': counts}
    table.update(columns or {})

    if format == 'csv':
        pd.DataFrame(table).to_csv(filepath, index=False)

    elif format == 'txt':
        with open(filepath, 'w') as f:
            if metadata:
                f.write("# Spectrum Data\n")
                for key, value in metadata.items():
                    f.write(f"# {key}: {value}\n")
                f.write("#\n")
            f.write("# " + "\t".join(table) + "\n")

            for row in zip(*table.values()):
                f.write("\t".join(f"{value:.3f}" for value in row) + "\n")

    elif format == 'spe':
        with open(filepath, 'w') as f:
            f.write("$SPEC_ID:\n")
            f.write("GammaSpec Export\n")
            f.write("$SPEC_REM:\n")
            f.write("Exported spectrum\n")
            f.write("$DATA:\n")
            f.write(f"0 {len(counts) - 1}\n")
            for count in counts:
                f.write(f"{int(round(count))}\n")
            f.write("$ROI:\n")
            f.write("0\n")

    else:
        raise ValueError(f"Unsupported export format: {format}")

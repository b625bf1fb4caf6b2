"""Relative EEG band power from two-channel epochs.

Each channel epoch is Hanning-windowed and a direct DFT is evaluated only at
the bins that overlap the five bands. Per-bin power is ``(re^2 + im^2) / N^2``
and band power is the sum over its bins; adjacent bands share their boundary
bin. The two channels are averaged and the result normalized so the bands
sum to one.
"""

import logging
from typing import Sequence, Tuple, List, Optional

import numpy as np
from scipy.signal import windows

from ..errors import InsufficientSamples
from ..models.biosignal import BandPowerSnapshot, BAND_NAMES

logger = logging.getLogger(__name__)

SAMPLE_RATE = 256
EPOCH_LENGTH = 256

BANDS: Tuple[Tuple[str, float, float], ...] = (
    ("delta", 1.0, 4.0),
    ("theta", 4.0, 8.0),
    ("alpha", 8.0, 13.0),
    ("beta", 13.0, 30.0),
    ("gamma", 30.0, 44.0),
)


def hanning_window(n: int) -> np.ndarray:
    """Symmetric Hanning window, w[i] = 0.5 - 0.5*cos(2*pi*i/(n-1))."""
    return windows.hann(n, sym=True)


def band_bins(f_low: float, f_high: float, n: int, sample_rate: float) -> np.ndarray:
    """DFT bin indices overlapping [f_low, f_high], clipped to [0, n/2]."""
    half = n // 2
    lo = int(np.floor(f_low * n / sample_rate + 0.5))
    hi = int(np.floor(f_high * n / sample_rate + 0.5))
    lo = min(max(lo, 0), half)
    hi = min(max(hi, 0), half)
    return np.arange(lo, hi + 1)


def bin_powers(windowed: np.ndarray, bins: np.ndarray) -> np.ndarray:
    """Power at the given bins via a direct DFT."""
    n = windowed.shape[0]
    angles = 2.0 * np.pi * np.outer(bins, np.arange(n)) / n
    re = (windowed * np.cos(angles)).sum(axis=1)
    im = -(windowed * np.sin(angles)).sum(axis=1)
    return (re * re + im * im) / (n * n)


def channel_band_powers(samples: Sequence[float],
                        sample_rate: float = SAMPLE_RATE,
                        epoch_length: int = EPOCH_LENGTH) -> np.ndarray:
    """Absolute power in each band for the newest ``epoch_length`` samples.

    Raises:
        InsufficientSamples: If fewer than ``epoch_length`` samples are given
    """
    if len(samples) < epoch_length:
        raise InsufficientSamples(
            f"Band power needs {epoch_length} samples, got {len(samples)}")

    epoch = np.asarray(samples, dtype=float)[-epoch_length:]
    windowed = epoch * hanning_window(epoch_length)

    return np.array([
        bin_powers(windowed, band_bins(f_low, f_high, epoch_length, sample_rate)).sum()
        for _, f_low, f_high in BANDS
    ])


def compute_band_powers(channel_a: Sequence[float],
                        channel_b: Sequence[float],
                        sample_rate: float = SAMPLE_RATE,
                        epoch_length: int = EPOCH_LENGTH,
                        timestamp_ms: int = 0) -> BandPowerSnapshot:
    """Normalized band powers averaged over two channel epochs.

    Args:
        channel_a: Samples (µV) of the first channel, at least one epoch long
        channel_b: Samples (µV) of the second channel, at least one epoch long
        sample_rate: Sample rate in Hz
        epoch_length: Samples per epoch
        timestamp_ms: Session offset stamped on the snapshot

    Returns:
        Snapshot whose fractions sum to 1, or all zeros for a silent epoch

    Raises:
        InsufficientSamples: If either channel is shorter than one epoch
    """
    powers = (channel_band_powers(channel_a, sample_rate, epoch_length)
              + channel_band_powers(channel_b, sample_rate, epoch_length)) / 2.0

    total = float(powers.sum())
    if not np.isfinite(total) or total <= 0.0:
        logger.debug("Degenerate epoch, returning zero band powers")
        return BandPowerSnapshot(timestamp_ms=timestamp_ms)

    fractions = powers / total
    return BandPowerSnapshot(timestamp_ms=timestamp_ms,
                             **{name: float(value) for name, value in zip(BAND_NAMES, fractions)})


def average_snapshots(snapshots: List[BandPowerSnapshot]) -> Optional[BandPowerSnapshot]:
    """Mean of a series of snapshots, or None when the series is empty."""
    if not snapshots:
        return None
    matrix = np.array([[getattr(s, name) for name in BAND_NAMES] for s in snapshots])
    means = matrix.mean(axis=0)
    return BandPowerSnapshot(timestamp_ms=snapshots[-1].timestamp_ms,
                             **{name: float(value) for name, value in zip(BAND_NAMES, means)})

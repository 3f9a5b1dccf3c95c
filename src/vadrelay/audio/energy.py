"""Energy meter for raw float audio blocks.

Converts a block of samples (amplitude range [-1, 1]) into a decibel-scale
loudness estimate: ``energy = 20 * log10(rms)``. Silent blocks have no
defined log, so every result is clamped to a finite floor and downstream
threshold comparisons never see NaN or -inf.
"""

import math
from collections.abc import Sequence
from typing import Final, Literal

import numpy as np
from numpy.typing import NDArray

ENERGY_FLOOR_DB: Final[float] = -100.0

# Meter display scaling: -60 dB is an empty meter, -20 dB a full one
DISPLAY_FLOOR_DB: Final[float] = -60.0
DISPLAY_SCALE: Final[float] = 2.5

MeterBand = Literal["low", "mid", "high"]


def compute_rms(samples: NDArray[np.floating] | Sequence[float]) -> float:
    """Compute root-mean-square amplitude of a block.

    Args:
        samples: Mono audio samples

    Returns:
        RMS amplitude, 0.0 for an empty block
    """
    block = np.asarray(samples, dtype=np.float64)
    if block.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(block))))


def compute_energy_db(
    samples: NDArray[np.floating] | Sequence[float],
    floor_db: float = ENERGY_FLOOR_DB,
) -> float:
    """Compute block energy in dBFS.

    The floor applies to near-silent blocks too: a block whose RMS is below
    ``10 ** (floor_db / 20)`` (1e-5 at the default floor) reports
    ``floor_db`` rather than its true level. Pass a lower ``floor_db`` to
    measure quieter signals.

    Args:
        samples: Mono audio samples
        floor_db: Value returned for silent blocks and lower bound for all results

    Returns:
        ``20 * log10(rms)`` clamped to ``floor_db``
    """
    rms = compute_rms(samples)
    if rms <= 0.0 or not math.isfinite(rms):
        return floor_db
    return max(20.0 * math.log10(rms), floor_db)


def normalize_energy(
    energy_db: float,
    display_floor_db: float = DISPLAY_FLOOR_DB,
    scale: float = DISPLAY_SCALE,
) -> float:
    """Map an energy reading to a 0-100 meter percentage."""
    return max(0.0, min(100.0, (energy_db - display_floor_db) * scale))


def meter_band(percent: float) -> MeterBand:
    """Classify a meter percentage into a display band."""
    if percent < 30:
        return "low"
    if percent < 70:
        return "mid"
    return "high"

"""Audio block utilities: energy metering and meter display scaling."""

from vadrelay.audio.energy import (
    ENERGY_FLOOR_DB,
    compute_energy_db,
    compute_rms,
    meter_band,
    normalize_energy,
)

__all__ = [
    "ENERGY_FLOOR_DB",
    "compute_energy_db",
    "compute_rms",
    "meter_band",
    "normalize_energy",
]

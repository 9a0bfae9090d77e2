"""Device capability probing."""

from __future__ import annotations

import logging

import psutil

from courtguide.core.config import DeviceConfig
from courtguide.core.models import DeviceHints

logger = logging.getLogger(__name__)


def probe_device_hints(config: DeviceConfig | None = None) -> DeviceHints:
    """Collect core count, memory and battery state, honouring config overrides.

    GPU family cannot be probed portably and only comes from configuration.
    """
    config = config or DeviceConfig()

    cpu_cores = config.cpu_cores
    if cpu_cores is None:
        cpu_cores = psutil.cpu_count(logical=True)

    memory_gb = config.memory_gb
    if memory_gb is None:
        memory_gb = psutil.virtual_memory().total / (1024**3)

    battery_level: float | None = None
    is_charging: bool | None = None
    sensors_battery = getattr(psutil, "sensors_battery", None)
    if sensors_battery is not None:
        try:
            battery = sensors_battery()
        except (OSError, RuntimeError) as e:
            logger.debug(f"Battery state unavailable: {e}")
            battery = None
        if battery is not None:
            battery_level = float(battery.percent)
            is_charging = bool(battery.power_plugged)

    hints = DeviceHints(
        cpu_cores=cpu_cores,
        memory_gb=memory_gb,
        gpu_name=config.gpu_name,
        battery_level=battery_level,
        is_charging=is_charging,
    )
    logger.debug(f"Device hints: {hints}")
    return hints


def process_memory_bytes() -> int:
    """Resident memory of the current process."""
    return int(psutil.Process().memory_info().rss)

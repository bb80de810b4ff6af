"""Runtime metrics collection.

A :class:`RuntimeMetricsCollector` is created once at process start and
``finalize()``-d once at the end; the resulting :class:`RuntimeMetrics` value is
handed to a sink such as :func:`write_runtime_metrics`. Nothing is kept in
module-level state.
"""

from __future__ import annotations

import logging
import os
import platform
import socket
import sys
import time
from pathlib import Path
from typing import Optional, Sequence

import psutil

from . import __version__
from .models import RuntimeHostInfo, RuntimeMetrics, RuntimeTask
from .serialization import to_dict
from .utils import bytes_to_mb, write_json

try:
    import resource
except ImportError:  # Windows
    resource = None  # type: ignore[assignment]

logger = logging.getLogger(__name__)


def _cpu_frequency_mhz() -> float:
    freq = psutil.cpu_freq()
    if freq is None:
        return 0.0
    return float(freq.max or freq.current or 0.0)


def collect_host_info(*, compute_provider: str = "", instance_type: str = "") -> RuntimeHostInfo:
    """Describe the current host.

    ``physical_core_count`` is 0 when psutil cannot determine it (some
    containers and BSDs).
    """
    return RuntimeHostInfo(
        host_name=socket.getfqdn(),
        compute_provider=compute_provider,
        instance_type=instance_type,
        physical_core_count=int(psutil.cpu_count(logical=False) or 0),
        cpu_frequency_mhz=_cpu_frequency_mhz(),
        total_memory_mb=bytes_to_mb(psutil.virtual_memory().total),
    )


def _peak_rss_mb() -> int:
    if resource is None:
        return 0
    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # ru_maxrss is bytes on macOS and kilobytes elsewhere
    if platform.system() == "Darwin":
        return bytes_to_mb(peak)
    return bytes_to_mb(peak * 1024)


class RuntimeMetricsCollector:
    """Accumulates process timing from construction until :meth:`finalize`."""

    def __init__(
        self,
        task: Optional[RuntimeTask] = None,
        *,
        command_line: Optional[Sequence[str]] = None,
        executable_name: Optional[str] = None,
        software_build_id: str = __version__,
        host_info: Optional[RuntimeHostInfo] = None,
    ) -> None:
        self.task = task if task is not None else RuntimeTask()
        self.command_line = tuple(command_line if command_line is not None else sys.argv)
        self.executable_name = executable_name if executable_name is not None else (
            self.command_line[0] if self.command_line else sys.executable
        )
        self.software_build_id = software_build_id
        self.host_info = host_info
        self._t0 = time.monotonic()
        self._cpu0 = os.times()
        self._metrics: Optional[RuntimeMetrics] = None

    def finalize(self, *, exit_code: int = 0, killed_by_signal: int = 0) -> RuntimeMetrics:
        """Build the immutable metrics record; later calls return the same value."""
        if self._metrics is not None:
            return self._metrics
        cpu = os.times()
        self._metrics = RuntimeMetrics(
            host_info=self.host_info if self.host_info is not None else collect_host_info(),
            task_info=self.task,
            executable_name=self.executable_name,
            software_build_id=self.software_build_id,
            command_line=self.command_line,
            wall_time_seconds=time.monotonic() - self._t0,
            cpu_user_time_seconds=cpu.user - self._cpu0.user,
            cpu_system_time_seconds=cpu.system - self._cpu0.system,
            memory_peak_rss_mb=_peak_rss_mb(),
            killed_by_signal=int(killed_by_signal),
            exit_code=int(exit_code),
        )
        return self._metrics


def write_runtime_metrics(path: str | Path, metrics: RuntimeMetrics) -> None:
    """JSON sink for a finalized metrics record."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    write_json(p, to_dict(metrics))
    logger.debug("Runtime metrics written to %s", p)

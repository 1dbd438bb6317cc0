"""Process monitoring and termination."""

from parentctl.monitor.process_control import ProcessControl
from parentctl.monitor.process_monitor import MonitorConfig, ProcessMonitor

__all__ = [
    "MonitorConfig",
    "ProcessControl",
    "ProcessMonitor",
]

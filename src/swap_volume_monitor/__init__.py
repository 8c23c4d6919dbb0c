from swap_volume_monitor.volume_monitor import VolumeMonitor

__all__ = ["VolumeMonitor"]

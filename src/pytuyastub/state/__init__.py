"""State/store layer.

The store is the single owner of the emulated device's data points. Both
the wire-side control handler and the host's direct mutation calls go
through it.
"""

from pytuyastub.state.store import DeviceStateStore

__all__ = ["DeviceStateStore"]

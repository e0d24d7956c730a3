# leadpulse - Ports (Protocol Interfaces)
# Abstract interfaces for adapters; no implementations here

from leadpulse.core.ports.time import TimePort

__all__ = ["TimePort"]

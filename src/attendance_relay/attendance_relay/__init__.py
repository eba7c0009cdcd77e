"""Attendance relay package.

Real-time attendance events from biometric terminals are replicated into every
configured store, together with a derived daily work record per employee.
The package is organized by feature modules (devices, stores, workrecords)
with a thin orchestration layer and an optional Flask admin surface.
"""

__version__ = "2.0.0"

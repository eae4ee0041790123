"""Shared exception types used across modules.

Only lightweight, dependency-free definitions should live here so that
signaling, webrtc and call packages can import them without cycles.
"""

from .errors import CallError, CaptureError, NegotiationError, SignalingError

__all__ = [
    "CallError",
    "CaptureError",
    "NegotiationError",
    "SignalingError",
]

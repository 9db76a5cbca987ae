"""
Common utilities for the session gateway.

Modules:
- errors: Error taxonomy shared by the session, dispatch and API layers
- settings: Environment (and SSM) backed configuration
- recipients: Phone number normalization and user addresses
- pacing: Randomized, cancellable delays between broadcast sends
- pairing: QR pairing artifact rendering
- version: Protocol version lookup over HTTP
"""

__all__ = [
    "errors",
    "settings",
    "recipients",
    "pacing",
    "pairing",
    "version",
]

"""
Presence Registry

Tracks which users hold live Socket.IO connections and exposes an
online/offline status and a long-lived last-seen timestamp per user.
"""

__version__ = "0.1.0"

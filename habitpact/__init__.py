"""habitpact: challenge lifecycle and participant/stake consistency core."""

__version__ = "0.1.0"

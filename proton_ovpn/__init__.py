"""OpenVPN helper for ProtonVPN profiles with split-route bypass and a connectivity watchdog."""

__version__ = "0.3.0"

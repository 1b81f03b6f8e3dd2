"""Exceptions raised where an operation cannot continue."""

from __future__ import annotations


class ProtonOVPNError(Exception):
    """Base class for errors reported to the user with exit status 1."""


class ProfileNotFoundError(ProtonOVPNError):
    pass


class LaunchError(ProtonOVPNError):
    """The OpenVPN client could not be started."""


class AlreadyRunningError(ProtonOVPNError):
    """Another connection attempt holds the instance lock."""


class PrivilegeError(ProtonOVPNError):
    pass


class InstallError(ProtonOVPNError):
    """A required installation step failed."""

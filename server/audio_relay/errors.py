"""Failure types raised while setting up or running a relay connection.

Every one of these is terminal for the connection it belongs to and is
resolved inside the connection handler by closing both legs.
"""
from __future__ import annotations


class RelayError(Exception):
    """Base class for per-connection relay failures."""


class RoutingError(RelayError):
    """The connection request has an unknown path or lacks a meeting id."""


class ConfigResolutionError(RelayError):
    """The instruction store could not provide usable session instructions."""


class UpstreamConnectError(RelayError):
    """The realtime backend session could not be established."""


class UpstreamDisconnectError(RelayError):
    """The realtime backend session ended while audio was being relayed."""


class ClientTransportError(RelayError):
    """The browser connection closed or failed while audio was being relayed."""

"""Exception hierarchy for the visit counter service."""

from __future__ import annotations


class VisitCounterError(Exception):
    """Base class for all service errors."""


class ConfigError(VisitCounterError):
    """Missing or invalid configuration. Fatal at startup."""


class StoreError(VisitCounterError):
    """Connectivity or write failure against the persistent store."""


class ServiceError(VisitCounterError):
    """A store failure encountered while serving a request."""

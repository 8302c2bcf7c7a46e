"""Exception types raised inside a concierge turn.

Everything below is caught at the request boundary (``concierge.service``)
and converted to a fixed, user-safe payload.
"""


class ConciergeError(Exception):
    """Base class for concierge failures."""


class ConfigurationError(ConciergeError):
    """A required credential or setting is missing."""


class UpstreamError(ConciergeError):
    """The chat model failed or returned something we cannot use.

    Covers transport errors, unparseable JSON, schema mismatches, and a tool
    call arriving after tools were already resolved.
    """

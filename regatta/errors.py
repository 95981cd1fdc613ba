"""
Error types raised by the regatta tracker
"""


class RegattaError(Exception):
    """Base class for all tracker errors"""


class InputError(RegattaError):
    """Malformed or out-of-order fixes, or missing buoy geometry for a regatta"""


class ConsistencyError(RegattaError):
    """Round/section bookkeeping does not match what the store recorded"""


class SourceError(RegattaError):
    """Position source could not be reached or answered with an error"""


class GeometryError(RegattaError):
    """Degenerate geometry, e.g. asking a vertical segment for y at x"""

""" Exceptions raised by dyson_local
"""


class DysonError(Exception):
    """ Base class for all errors raised by this package
    """


class DysonConfigurationError(DysonError):
    """ The device is misconfigured (unknown product type, no host, broken device file).
    Retrying will not help.
    """


class DysonTransportError(DysonError):
    """ The broker could not be reached, refused us, or dropped the session mid-operation
    """


class DysonConnectionTimeout(DysonTransportError):
    """ The broker did not acknowledge the session before the deadline
    """


class DysonNotConnectedError(DysonError):
    """ An operation needing a live session was called without one
    """

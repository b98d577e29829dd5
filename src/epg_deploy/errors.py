"""Exceptions raised by epg-deploy."""


class EpgDeployError(Exception):
    """Base class for epg-deploy failures."""


class CombineError(EpgDeployError):
    """The combined channels document could not be written."""

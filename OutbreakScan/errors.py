"""Exceptions raised by the prospective surveillance methods. All but
`InvalidConfiguration` are recoverable at the level of a single time step:
the surveillance loops record them and move on to the next month."""


class OutbreakScanError(Exception):
    """Base class for all errors raised in this package"""


class MissingReferenceData(OutbreakScanError):
    """A case or district lacks required covariates (area, population) or
    is absent from the district reference grid."""


class SingularCovariance(OutbreakScanError):
    """Too little history to invert the covariance matrix of Hotelling's T^2."""


class DegenerateZone(OutbreakScanError):
    """Every zone/duration pair has zero expected count (or covers the whole
    window), so no scan statistic can be computed."""


class InvalidConfiguration(OutbreakScanError):
    """Run parameters are malformed. Checked once before any loop starts."""

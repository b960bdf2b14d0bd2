"""
Errors raised while loading and streaming oriented imagery.

Load-time errors (InvalidCalibration, ReprojectionError) abort layer
initialization. FetchFailure and NoStationsAvailable are raised inside the
update tick and absorbed by the layer, which keeps the last good composite.
"""


class OrientedImageryError(Exception):
    """Base class for every error raised by this package."""


class InvalidCalibration(OrientedImageryError):
    """
    A sensor calibration record is malformed.

    Attributes:
    -----------
    sensor_id : object
        id of the offending record (None when the record has no id)
    reason : str
        what is wrong with it
    """

    def __init__(self, reason: str, sensor_id=None):
        self.sensor_id = sensor_id
        self.reason = reason
        super().__init__(f"Invalid calibration for sensor {sensor_id!r}: {reason}")


class ReprojectionError(OrientedImageryError):
    """The station positions cannot be converted to geocentric coordinates."""

    def __init__(self, crs: str, reason: str):
        self.crs = crs
        self.reason = reason
        super().__init__(f"Cannot reproject from {crs!r}: {reason}")


class FetchFailure(OrientedImageryError):
    """A source image (or document) could not be fetched or decoded."""

    def __init__(self, url: str, cause: Exception = None):
        self.url = url
        self.cause = cause
        detail = f"{type(cause).__name__}: {cause}" if cause is not None else "unknown error"
        super().__init__(f"Failed to fetch {url}: {detail}")


class NoStationsAvailable(OrientedImageryError):
    """The registry holds no capture station."""

    def __init__(self):
        super().__init__("No capture station available")

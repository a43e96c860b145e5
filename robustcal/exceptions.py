"""Error types raised by robust estimation and calibration."""


class CalibrationError(Exception):
    """Base class for all calibration errors."""


class NotReadyError(CalibrationError):
    """Raised when inputs or configuration are not valid to start a run."""


class LockedError(CalibrationError):
    """Raised when an estimator or calibrator is invoked while already running."""


class EstimationError(CalibrationError):
    """Raised when no candidate model could be found within the iteration budget."""


class EstimationCancelledError(EstimationError):
    """Raised when a run is stopped through its cancellation event."""


class RefinementError(CalibrationError):
    """Raised when the final least squares refinement over inliers fails."""

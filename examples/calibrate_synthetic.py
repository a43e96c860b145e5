"""Calibrate a simulated magnetometer with every robust method."""

import sys

import numpy as np

from robustcal import EstimatorListener, RobustMagnetometerCalibrator, load_config
from robustcal.calibration.generators import generate_measurements
from robustcal.utils.logger import create_session_log_file, setup_logger


def main():
    """Estimate hard-iron and soft-iron errors from contaminated measurements."""
    logger = setup_logger('robustcal', log_file=create_session_log_file())
    config = load_config(sys.argv[1] if len(sys.argv) > 1 else None)

    hard_iron = np.array([100e-9, 50e-9, -30e-9])
    mm = np.array([[2e-3, 1e-4, -3e-4],
                   [-2e-4, -1e-3, 2e-4],
                   [3e-4, -1e-4, 1.5e-3]])

    outliers = list(range(0, 100, 5))
    measurements = generate_measurements(hard_iron, mm, 100, noise_std=10e-9,
                                         outlier_indices=outliers, outlier_error=2000e-9,
                                         random_state=0)
    # a real device would score readings by e.g. temperature stability
    quality = np.ones(len(measurements))
    quality[outliers] = 0.2

    listener = EstimatorListener(
        on_progress=lambda source, progress: logger.debug(
            "%s: %.0f%%", source.method.value, progress * 100))

    for method in ('ransac', 'lmeds', 'msac', 'prosac', 'promeds'):
        calibrator = RobustMagnetometerCalibrator(measurements, method=method,
                                                  quality_scores=quality, listener=listener,
                                                  config=config, random_state=1)
        result = calibrator.calibrate()

        logger.info(f"{method}: {result.inliers_data.num_inliers} inliers, "
                    f"{result.iterations} iterations, {result.elapsed_ms:.1f} ms")
        logger.info(f"  hard-iron error: {np.abs(result.hard_iron - hard_iron).max() * 1e9:.2f} nT")
        logger.info(f"  soft-iron error: {np.abs(result.mm - mm).max():.2e}")
        if result.hard_iron_std is not None:
            logger.info(f"  hard-iron std: {result.hard_iron_std * 1e9} nT")


if __name__ == "__main__":
    main()

"""Tests for utility modules."""

import logging
import math
from pathlib import Path

import numpy as np

from robustcal.utils.logger import create_session_log_file, setup_logger
from robustcal.utils.metrics import PerformanceMetrics, ResidualMetrics


class TestPerformanceMetrics:
    """Test timing metrics."""

    def test_timer(self):
        """Test that a started timer reports a duration."""
        metrics = PerformanceMetrics()
        metrics.start_timer('calibrate')
        duration = metrics.stop_timer('calibrate')

        assert duration >= 0.0
        assert metrics.get_summary() == {'calibrate': duration}

    def test_stop_unknown_timer(self):
        """Test stopping a timer that was never started."""
        assert PerformanceMetrics().stop_timer('missing') == 0.0


class TestResidualMetrics:
    """Test residual summaries."""

    def test_summarize(self):
        """Test statistics over all residuals."""
        stats = ResidualMetrics.summarize([1.0, 2.0, 3.0, 10.0])

        assert stats['mean_error'] == 4.0
        assert stats['median_error'] == 2.5
        assert stats['max_error'] == 10.0
        assert stats['std_error'] == np.std([1.0, 2.0, 3.0, 10.0])

    def test_mask(self):
        """Test statistics restricted to inliers."""
        stats = ResidualMetrics.summarize([1.0, 2.0, 3.0, 10.0], [True, True, True, False])
        assert stats['max_error'] == 3.0
        assert stats['mean_error'] == 2.0

    def test_empty(self):
        """Test that empty selections give NaN."""
        stats = ResidualMetrics.summarize([1.0, 2.0], [False, False])
        assert all(math.isnan(v) for v in stats.values())


class TestLogger:
    """Test logger setup."""

    def test_repeated_setup_does_not_stack_handlers(self):
        """Test that calling setup twice keeps a single console handler."""
        logger = setup_logger('robustcal.test_stack')
        setup_logger('robustcal.test_stack', log_level=logging.DEBUG)

        assert len(logger.handlers) == 1
        assert logger.level == logging.DEBUG

    def test_file_handler(self, tmp_path):
        """Test logging to a file."""
        log_file = tmp_path / 'logs' / 'run.log'
        logger = setup_logger('robustcal.test_file', log_file=str(log_file))
        logger.info("calibration done")
        for handler in logger.handlers:
            handler.flush()

        assert len(logger.handlers) == 2
        assert "calibration done" in log_file.read_text()

        setup_logger('robustcal.test_file')
        assert len(logger.handlers) == 1

    def test_session_log_file(self, tmp_path):
        """Test timestamped session log path."""
        path = create_session_log_file(str(tmp_path / 'sessions'))
        assert path.startswith(str(tmp_path / 'sessions'))
        assert path.endswith('.log')
        assert (tmp_path / 'sessions').is_dir()

    def test_session_log_file_names_method(self, tmp_path):
        """Test that the robust method appears in the session log name."""
        path = create_session_log_file(str(tmp_path), method='lmeds')
        assert Path(path).name.startswith('calibration_lmeds_')

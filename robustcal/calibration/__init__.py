"""Magnetometer error model, refinement and robust calibrator."""

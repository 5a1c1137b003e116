"""Simulation harness and experiment runner."""

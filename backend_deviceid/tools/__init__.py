"""Operational command-line tools for Backend DeviceID."""

"""
Backend DeviceID: trust and identity confidence engine for the device registry.

Scores a device's ownership, event and dispute history into a bounded trust
score and re-identifies devices from partial hardware fingerprints.
"""

__version__ = "0.1.0"

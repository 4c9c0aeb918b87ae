"""
Structured logging for Backend DeviceID.

JSON logs with timestamp, device_id and event_type.
Use get_logger() in every module for aggregation-friendly output.
"""

from backend_deviceid.deviceid_logging.logger import (
    bind_device,
    configure_structlog,
    device_context,
    get_logger,
)

__all__ = ["bind_device", "configure_structlog", "device_context", "get_logger"]

"""Domain layer: enums, value objects, result types, errors and ports."""

from .entities import (
    ResourceType,
    WarningType,
    ErrorCode,
    WARNING_THRESHOLDS,
    PermissionOverwrite,
    Attachment,
    PlatformMessage,
    PlatformChannel,
    ChannelConfig,
    DetectedResource,
    ArchiveOptions,
    LiveMessage,
)

__all__ = [
    "ResourceType",
    "WarningType",
    "ErrorCode",
    "WARNING_THRESHOLDS",
    "PermissionOverwrite",
    "Attachment",
    "PlatformMessage",
    "PlatformChannel",
    "ChannelConfig",
    "DetectedResource",
    "ArchiveOptions",
    "LiveMessage",
]

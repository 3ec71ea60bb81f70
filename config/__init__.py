"""Configuration package"""
from .settings import (
    Settings,
    MonitoringConfig,
    RetentionConfig,
    EmailConfig,
    RealtimeConfig,
    LoggingConfig,
    load_settings,
    get_settings,
    reset_settings,
    get_monitoring_config,
    get_retention_config,
    get_email_config,
    get_realtime_config,
    get_logging_config
)

__all__ = [
    'Settings',
    'MonitoringConfig',
    'RetentionConfig',
    'EmailConfig',
    'RealtimeConfig',
    'LoggingConfig',
    'load_settings',
    'get_settings',
    'reset_settings',
    'get_monitoring_config',
    'get_retention_config',
    'get_email_config',
    'get_realtime_config',
    'get_logging_config'
]

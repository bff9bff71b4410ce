"""
Error taxonomy for Pool Sniper

Every failure the bot can hit is one of four kinds. Decode, fetch and
submission errors drop the notification being handled and are logged by the
listener. Config errors abort startup.
"""


class SniperError(Exception):
    """Base class for all bot errors"""


class DecodeError(SniperError):
    """Account bytes do not match the expected layout. Never retried."""


class FetchError(SniperError):
    """RPC read failed or returned no value"""


class SubmissionError(SniperError):
    """Transaction could not be sent"""


class ConfigError(SniperError):
    """Invalid or unsupported configuration. Fatal at startup."""

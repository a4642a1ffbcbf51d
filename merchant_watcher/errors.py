"""Exceptions raised by the ingestion pipeline and storage layer."""


class WatcherError(Exception):
    """Base exception for merchant watcher errors"""
    pass


class UpstreamUnavailable(WatcherError):
    """Upstream API unreachable, timed out, or answered with a non-2xx status"""
    pass


class MalformedPayload(WatcherError):
    """Upstream payload could not be decoded into a merchant snapshot"""
    pass


class MalformedTimestamp(MalformedPayload):
    """A sale date is not a valid RFC 3339 timestamp"""
    pass


class MalformedAmount(MalformedPayload):
    """A monetary string is not a finite decimal number"""
    pass


class PersistenceFailure(WatcherError):
    """Storage operation failed and was rolled back"""
    pass


class MilestoneTypeInvalid(WatcherError):
    """Milestone type is neither 'transactions' nor 'volume'"""
    pass


class MerchantNotFound(WatcherError):
    """No merchant with the requested id"""
    pass


class MilestoneNotFound(WatcherError):
    """No milestone with the requested id"""
    pass


class ConfigurationError(WatcherError):
    """Configuration loading or validation errors"""
    pass

"""
Exception hierarchy for the coaster fleet service
"""


class CoasterFleetError(Exception):
    """Base class for errors raised by this package"""
    pass


class StoreError(CoasterFleetError):
    """Record store could not read or write its backing files"""
    pass


class BrokerError(CoasterFleetError):
    """Broker operation failed (connection lost, command rejected)"""
    pass

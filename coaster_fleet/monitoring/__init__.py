from .reporter import StatusReporter, SystemStatus, format_report

__all__ = ['StatusReporter', 'SystemStatus', 'format_report']

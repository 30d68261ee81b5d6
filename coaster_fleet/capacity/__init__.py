"""
Capacity planning: staffing and equipment verdicts for one coaster.
"""
from .model import CoasterAssessment, CoasterHealth, PersonnelStatus, WagonRequirement, assess

__all__ = ['CoasterAssessment', 'CoasterHealth', 'PersonnelStatus', 'WagonRequirement', 'assess']

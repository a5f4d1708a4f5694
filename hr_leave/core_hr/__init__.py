"""Core HR module — Organization and Employee records consumed by the leave ledger."""

from hr_leave.core_hr.models import Employee, Organization

__all__ = ["Employee", "Organization"]

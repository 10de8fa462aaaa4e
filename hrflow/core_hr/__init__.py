"""Core HR module — Employee and Department records read by the workflow engine."""

from hrflow.core_hr.models import Department, Employee

__all__ = ["Employee", "Department"]

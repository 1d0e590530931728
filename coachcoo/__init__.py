"""Routine coach: guides a child through spoken, step-by-step routines."""

__version__ = "0.1.0"

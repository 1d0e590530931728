"""Test package for coachcoo.

Unit tests for the routine interpreter, the runner and its adapters, plus
the ambient configuration, logging and CLI layers.
"""

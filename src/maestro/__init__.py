"""Maestro – plans user goals with a planner model and runs them across worker agents."""

__version__ = "0.1.0"

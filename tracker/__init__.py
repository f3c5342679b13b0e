"""Affiliate performance tracker with a tiered incentive rule engine."""

__version__ = "0.1.0"

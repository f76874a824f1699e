"""
Core modules for Bedrock Usage.

This package contains the reporting core: calendar windows, identifier
naming, time-series reconciliation and grouped aggregation.
"""

# job_scout/__init__.py
"""
JobScout package initializer.
Defines package version; the CLI lives in :mod:`job_scout.cli`.
"""
__version__ = "0.1.0"

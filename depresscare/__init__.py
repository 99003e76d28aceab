"""
DepressCare

A FastAPI-based backend for mental-health care coordination: patients
book sessions with psychiatrists, psychiatrists manage them, and
administrators enroll psychiatrists and manage accounts.
"""

__version__ = "1.0.0"

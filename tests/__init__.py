"""
Test suite for the DepressCare API.

Contains unit tests for the appointment lifecycle and integration tests
for the HTTP endpoints.
"""
import os

# Set environment for testing
os.environ["TESTING"] = "1"

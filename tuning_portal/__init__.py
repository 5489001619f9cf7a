"""
Security monitoring backend for the Tuning Portal.

Records authentication and access events, detects geographic anomalies and
brute-force activity, locks accounts after repeated failures and reports on
all of it to administrators.
"""

__version__ = "0.1.0"

"""
titanscan - scan job orchestration backend.

Runs independent security tools (local commands or the ZAP HTTP API) against
a single target, tracks asynchronous jobs in a progress store and aggregates
multi-tool runs into one report.
"""

__version__ = "0.1.0"

"""
logsync - incremental AI Gateway log synchronization into BigQuery.

Packages:
- logsync.core: errors, results, logging, settings, key/value stores, cursors
- logsync.source: log source client and record model
- logsync.sink: BigQuery bulk-insert sink and service-account auth
- logsync.sync: forward / backfill controllers and the cadence dispatcher
- logsync.cli: Typer command line
"""

__version__ = "0.3.0"

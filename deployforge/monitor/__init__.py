"""Run monitor — read-only projection over the Run Ledger.

Modules
-------
projection
    ``MonitorProjection`` replays the ledger into a frozen ``RunSnapshot``.
renderer
    ``MonitorRenderer`` turns pipelines and snapshots into Rich renderables.
"""

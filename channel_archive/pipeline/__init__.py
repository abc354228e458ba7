"""Channel archive pipeline.

Stages (export, ingest, index, upload, relocate), the status ledger that
records every transition, and the orchestrator that sequences them.

Usage:
    python -m channel_archive lurk --channel-id X     # local pipeline
    python -m channel_archive archive --channel-id X  # remote pipeline
"""

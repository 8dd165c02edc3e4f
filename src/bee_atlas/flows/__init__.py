"""
Prefect flows.

Flows:
- process: run one task by id, outside the queue worker

Usage (local):
    python -m bee_atlas.flows.process <task-id>

Usage (Prefect):
    prefect server start  # Optional, for dashboard
    python -m bee_atlas.flows.process <task-id>
"""

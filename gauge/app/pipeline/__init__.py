"""
Pipeline package — reconciliation and the cached aggregates built on it.

Modules:
    orchestrator  — batched, priority-ordered multi-provider fetch
    water_levels  — basin snapshot with status-dependent cache age
    rainfall      — statewide rainfall aggregate
    warm          — background cache warm on startup
    services      — service container wired from settings
"""

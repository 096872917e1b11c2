"""
Hydrology domain — provider-independent types and pure computations.

Modules:
    models       — stations, readings, thresholds, aggregate results
    stations     — static registry of gauges, dams and rainfall sample points
    trend        — rate of change and rising/falling/stable classification
    status       — flood severity from level and thresholds
    predictions  — short-range projections and upstream triggers
"""

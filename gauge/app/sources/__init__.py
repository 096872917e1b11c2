"""
Provider clients — upstream wire formats in, domain types out.

Modules:
    base        — ProviderResult, FetchStatus, shared HTTP plumbing
    timestamps  — WMIP 14-digit AEST codec and ISO-8601 parsing
    bom         — BOM Water Data SOS2 / WaterML 2.0
    wmip        — Queensland WMIP (Hydstra JSON)
    open_meteo  — rainfall summaries and current weather
    warnings    — BOM flood warning feeds
"""

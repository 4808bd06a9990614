"""
Panel energy monitor service package.

Ingests power-meter telemetry from electrical distribution panels over MQTT,
keeps the freshest reading per panel in memory, persists every reading to
InfluxDB, and serves realtime, history, and usage/cost views over HTTP.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

"""Health data connectors — export parsing, session entries and profile preferences."""

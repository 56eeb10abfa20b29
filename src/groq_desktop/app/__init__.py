"""
Application Layer - Bootstrap, State and Stream Entry Points
============================================================

Modules:
    bootstrap: Environment loading and settings validation
    state: AppState container (settings, stream registry, provider clients)
    runtime: ``start_stream`` / ``stop_stream`` and request preparation
"""

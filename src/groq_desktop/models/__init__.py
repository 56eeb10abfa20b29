"""
Models Module - Data Models and Type Definitions
=================================================

Modules:
    stream_models: Internal stream events and the records they build
    event_models: Outbound IPC events (camelCase on the wire)
    error_models: Error taxonomy with application error codes
"""

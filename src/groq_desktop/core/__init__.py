"""
Core Layer - Stream Orchestration and Configuration
===================================================

Modules:
    constants: Configuration values and Pydantic settings
    prompts: System prompt and reasoning-summary prompts
    message_utils: History cleaning, image detection, context pruning
    request_builder: Provider parameters for both protocol variants
    accumulator: Per-attempt merge of stream events
    completion: Finish-reason derivation and the completion record
    retry: Bounded retry of tool-use failures
    summarizer: Periodic reasoning summaries
    stream_registry: Stream sessions and cancellation
    pipeline: Adapter events -> accumulator -> session

Data Flow:
    runtime -> request_builder -> pipeline(retry(adapter.stream)) -> accumulator
    -> session.emit -> sink; completion builds the terminal ``complete`` event.
"""

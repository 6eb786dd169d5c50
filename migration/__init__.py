"""
Staged, event-driven migration of reference data into the destination.

This package contains every component of one migration run:

Modules:
    stages: Ordered migration stages
    bus: In-process event bus and the process-wide error sink
    tracker: Per-stage outstanding-unit counters
    dispatcher: Rate-limited push (batches) and poll (pages) engine
    circuit_breaker: Failure isolation for outbound calls
    auth: Destination credentials
    gateway: Authenticated, breaker-protected HTTP requests
    state: Run-scoped store shared between stages
    context: Per-run wiring of the components above
    orchestrator: Stage state machine driven by completion events
    pipeline: Run lifecycle and the per-stage plans

Subpackages:
    extractors: Locations/users CSV readers and source database pages
    transformers: Location hierarchy rebuild and user grouping
    loaders: Intermediate CSV artifacts

Flow:
    1. The orchestrator launches a stage's plan
    2. The dispatcher sends its batches or pages through the gateway
    3. Each resolved unit decrements the stage counter
    4. The decrement that reaches zero publishes STAGE_COMPLETE
    5. The orchestrator advances; after the last stage SHUTDOWN is published

Usage:
    from core.config import Settings
    from migration.pipeline import run_migration

    summary = await run_migration(Settings(SOURCE_FILE="locations.csv"))
    print(summary["status"])

Error Handling:
    Unrecoverable errors go to the ErrorSink, which logs their structured
    context and publishes SHUTDOWN. Per-request failures are absorbed by the
    circuit breaker and logged.
"""

__all__ = [
    "MigrationStage",
    "EventBus",
    "ErrorSink",
    "CompletionTracker",
    "DispatchEngine",
    "CircuitBreaker",
    "ResilientGateway",
    "RunStore",
    "MigrationContext",
    "StageOrchestrator",
    "MigrationPipeline",
    "run_migration",
]

"""claimboard: team task tracking with an optimistic task workflow.

Provides:
- Claim/release/complete/update of tasks guarded by a version counter
- Automation rules that spawn tasks from templates, at most once per entity
- Card state derived from the completion of its tasks
- Work sessions with heartbeats and accumulated time per user and task

Usage:
    # HTTP service: an ASGI app for whichever server hosts it
    from claimboard.web.app import create_app

    app = create_app()

    # Python API
    from claimboard.web.orchestrator import WorkflowOrchestrator
    from claimboard.web.messages import ClaimTask

    result = await WorkflowOrchestrator(db).handle(ClaimTask(actor_id=7, task_id=5, version=3))
"""

try:
    from importlib.metadata import version as _get_version

    __version__ = _get_version("claimboard")
except Exception:
    __version__ = "0.0.0-dev"


def __getattr__(name: str):
    """Lazy import for main classes."""
    if name == "WorkflowOrchestrator":
        from .web.orchestrator import WorkflowOrchestrator

        return WorkflowOrchestrator
    if name == "WebConfig":
        from .web.config import WebConfig

        return WebConfig
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "__version__",
    "WorkflowOrchestrator",
    "WebConfig",
]

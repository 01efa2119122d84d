from smart_todo.agent.orchestration.loop import run
from smart_todo.agent.orchestration.types import ExecutedCommand
from smart_todo.agent.orchestration.types import RunFailureContext
from smart_todo.agent.orchestration.types import RunOptions
from smart_todo.agent.orchestration.types import SessionRunError
from smart_todo.agent.orchestration.types import SessionRunResult

__all__ = [
    "ExecutedCommand",
    "RunFailureContext",
    "RunOptions",
    "SessionRunError",
    "SessionRunResult",
    "run",
]

from smart_todo.agent.session.commands import parse_command
from smart_todo.agent.session.rendering import SessionResponse
from smart_todo.agent.session.state_machine import CommandOutcome
from smart_todo.agent.session.state_machine import Session
from smart_todo.agent.session.state_machine import handle_command
from smart_todo.agent.session.state_machine import start_session
from smart_todo.agent.session.targets import ExistingTarget
from smart_todo.agent.session.targets import PendingTarget

__all__ = [
    "CommandOutcome",
    "ExistingTarget",
    "PendingTarget",
    "Session",
    "SessionResponse",
    "handle_command",
    "parse_command",
    "start_session",
]

from smart_todo.tasks.models import Task
from smart_todo.tasks.models import TaskNotFoundError
from smart_todo.tasks.models import TaskStoreError
from smart_todo.tasks.models import TaskValidationError
from smart_todo.tasks.store import SqliteTaskStore
from smart_todo.tasks.store import TaskStore

__all__ = [
    "SqliteTaskStore",
    "Task",
    "TaskNotFoundError",
    "TaskStore",
    "TaskStoreError",
    "TaskValidationError",
]

"""
CommandRegistry - named control commands for the geofence service

Commands are registered once at startup (AreaCommandHandlers.register_all)
and looked up by case-insensitive name for every control message. Unknown
names fail fast with CommandNotAvailableError; the control plane turns that
into a "command_failed" status listing what is available.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Set
import threading


class CommandNotAvailableError(Exception):
    """Raised when attempting to execute an unregistered command"""


CommandHandler = Callable[[Mapping[str, Any]], Any]


@dataclass(frozen=True)
class RegisteredCommand:
    handler: CommandHandler
    description: str


class CommandRegistry:
    """
    Name -> handler table.

    Handlers receive the whole decoded payload (e.g. {"command": "remove_area",
    "area_id": "park"}) and run outside the registry lock.

    Example:
        registry = CommandRegistry()
        registry.register('list_areas', handlers.list_areas, "List all areas")
        registry.execute('LIST_AREAS', {})
    """

    def __init__(self):
        self._commands: Dict[str, RegisteredCommand] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(command: str) -> str:
        return command.strip().lower()

    def register(self, command: str, handler: CommandHandler, description: str) -> None:
        """
        Add a command.

        Raises:
            ValueError: empty name, name with spaces, or a name already taken
        """
        key = self._key(command)
        if not key or ' ' in key:
            raise ValueError(f"Invalid command name: {command!r}")

        with self._lock:
            if key in self._commands:
                raise ValueError(f"Command '{key}' already registered")
            self._commands[key] = RegisteredCommand(handler, description)

    def execute(self, command: str, command_data: Optional[Mapping[str, Any]] = None) -> Any:
        key = self._key(command)
        with self._lock:
            entry = self._commands.get(key)

        if entry is None:
            raise CommandNotAvailableError(f"Command '{key}' not available")
        return entry.handler(command_data or {})

    @property
    def available_commands(self) -> Set[str]:
        with self._lock:
            return set(self._commands)

    def get_help(self) -> Dict[str, str]:
        """Command name -> description, sorted by name."""
        with self._lock:
            return {name: self._commands[name].description for name in sorted(self._commands)}

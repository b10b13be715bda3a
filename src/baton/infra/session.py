import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Sequence

from pydantic import ValidationError

from baton.config import Config
from baton.config_provider import ConfigProvider
from baton.domain.messages import Message, Role

logger = logging.getLogger(__name__)


def _window(messages: List[Message], max_messages: Optional[int]) -> List[Message]:
    """Keep the newest messages without starting on an orphaned tool result."""

    if not max_messages or len(messages) <= max_messages:
        return messages
    trimmed = messages[-max_messages:]
    while trimmed and trimmed[0].role == Role.TOOL:
        trimmed = trimmed[1:]
    return trimmed


class Session(ABC):
    """Conversation history shared across runs."""

    @abstractmethod
    async def get_history(self) -> List[Message]:
        """Return stored messages, oldest first."""

    @abstractmethod
    async def append(self, messages: Sequence[Message]) -> None:
        """Append messages produced by a completed run.

        Args:
            messages: New messages in conversation order.
        """

    @abstractmethod
    async def clear(self) -> None:
        """Drop all stored messages."""


class InMemorySession(Session):
    """Process-local session; history is lost when the process exits."""

    def __init__(self, session_id: str = "default", max_messages: Optional[int] = None) -> None:
        self.session_id = session_id
        self._max_messages = max_messages
        self._messages: List[Message] = []

    async def get_history(self) -> List[Message]:
        return list(self._messages)

    async def append(self, messages: Sequence[Message]) -> None:
        self._messages = _window(self._messages + list(messages), self._max_messages)

    async def clear(self) -> None:
        self._messages = []


class JsonFileSession(Session):
    """JSON-lines journal of conversation messages."""

    DEFAULT_MAX_FILE_BYTES = 5_000_000

    def __init__(
        self,
        path: Path,
        max_messages: Optional[int] = None,
        max_file_bytes: int = DEFAULT_MAX_FILE_BYTES,
    ) -> None:
        """Initialize the session with a journal path.

        Args:
            path: Path to the JSONL file used for persistence.
            max_messages: Sliding-window size; None keeps everything.
            max_file_bytes: Journal size that triggers compaction.
        """

        self._path = Path(path)
        self._max_messages = max_messages
        self._max_file_bytes = max(0, int(max_file_bytes))
        self._lock = asyncio.Lock()
        self._messages = self._load()

    @classmethod
    def from_config(
        cls, session_id: str, config: Optional[Config] = None, **kwargs
    ) -> "JsonFileSession":
        """Open the journal for a session id under the configured session directory.

        Args:
            session_id: Identifier of the conversation.
            config: Runtime configuration; loaded through ConfigProvider when
                omitted.
            **kwargs: Passed to the constructor.
        """

        config = config or ConfigProvider().load()
        return cls(config.get_session_path(session_id), **kwargs)

    @property
    def path(self) -> Path:
        return self._path

    async def get_history(self) -> List[Message]:
        return list(self._messages)

    async def append(self, messages: Sequence[Message]) -> None:
        if not messages:
            return
        async with self._lock:
            combined = self._messages + list(messages)
            windowed = _window(combined, self._max_messages)
            trimmed = len(windowed) != len(combined)
            self._messages = windowed
            if trimmed:
                await asyncio.to_thread(self._compact)
            else:
                await asyncio.to_thread(self._append_lines, list(messages))
                if self._should_compact():
                    await asyncio.to_thread(self._compact)

    async def clear(self) -> None:
        async with self._lock:
            self._messages = []
            await asyncio.to_thread(self._compact)

    def _load(self) -> List[Message]:
        """Load messages from disk, skipping lines that fail to parse."""

        if not self._path.exists():
            return []
        messages: List[Message] = []
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                for line in handle:
                    stripped = line.strip()
                    if not stripped:
                        continue
                    try:
                        messages.append(Message.model_validate(json.loads(stripped)))
                    except (json.JSONDecodeError, ValidationError):
                        logger.warning(
                            "Skipping invalid session record",
                            extra={"path": str(self._path)},
                        )
        except OSError:
            logger.warning(
                "Failed to load session file; starting with empty history",
                extra={"path": str(self._path)},
            )
            return []
        return _window(messages, self._max_messages)

    def _append_lines(self, messages: List[Message]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("a", encoding="utf-8") as handle:
            for message in messages:
                handle.write(message.model_dump_json())
                handle.write("\n")
        self._apply_permissions()

    def _compact(self) -> None:
        """Rewrite the journal with the retained messages."""

        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("w", encoding="utf-8") as handle:
            for message in self._messages:
                handle.write(message.model_dump_json())
                handle.write("\n")
        self._apply_permissions()

    def _apply_permissions(self) -> None:
        try:
            os.chmod(self._path, 0o600)
        except OSError:
            return

    def _should_compact(self) -> bool:
        if self._max_file_bytes <= 0:
            return False
        try:
            return self._path.stat().st_size > self._max_file_bytes
        except OSError:
            return False

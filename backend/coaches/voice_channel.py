"""Voice channel implementations the feedback bridge can drive."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)


class VoiceChannel(ABC):
    """
    Output side of the voice assistant.

    `say` interrupts and speaks immediately; `inject_context` adds a note for
    the assistant's next turn without interrupting. `is_speaking` mirrors the
    assistant's speech-update notifications.
    """

    name: str = "base"

    def __init__(self):
        self.is_speaking = False
        self.is_connected = True

    @abstractmethod
    def say(self, text: str) -> None:
        """Speak text immediately."""

    @abstractmethod
    def inject_context(self, text: str) -> None:
        """Queue a system note for the assistant's next turn."""

    def close(self) -> None:
        return None


class QueuedVoiceChannel(VoiceChannel):
    """Collects actions so the websocket handler can forward them to the client's voice SDK."""

    name = "client"

    def __init__(self):
        super().__init__()
        self._actions: List[Dict[str, str]] = []

    def say(self, text: str) -> None:
        self._actions.append({"type": "say", "text": text})

    def inject_context(self, text: str) -> None:
        self._actions.append({"type": "inject_context", "text": text})

    def drain(self) -> List[Dict[str, str]]:
        actions, self._actions = self._actions, []
        return actions


class HttpVoiceChannel(VoiceChannel):
    """Posts control messages to a live call's control URL."""

    name = "http"

    def __init__(self, control_url: str, timeout: float = 2.0, session: Optional[requests.Session] = None):
        super().__init__()
        self.control_url = control_url
        self.timeout = timeout
        self.session = session or requests.Session()

    def _post(self, payload: Dict[str, Any]) -> bool:
        try:
            resp = self.session.post(self.control_url, json=payload, timeout=self.timeout)
            resp.raise_for_status()
            return True
        except requests.RequestException as e:
            logger.warning("Voice control call failed (%s): %s", payload.get("type"), e)
            return False

    def say(self, text: str) -> None:
        self._post({"type": "say", "content": text})

    def inject_context(self, text: str) -> None:
        self._post(
            {
                "type": "add-message",
                "message": {"role": "system", "content": text},
                "triggerResponseEnabled": False,
            }
        )

    def close(self) -> None:
        self.session.close()

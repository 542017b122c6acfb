"""
Offline text generator that replays prepared markup.

Useful for scripted runs and tests where no model should be called:
each generate() call returns the next prepared response.
"""

from __future__ import annotations

from typing import Iterable, List

from ..errors import GenOpsError
from .interface import TextGenerator


class ReplayGenerator(TextGenerator):
    """
    Return canned responses in order, recording the prompts received.
    """

    def __init__(self, responses: Iterable[str]) -> None:
        self._responses: List[str] = list(responses)
        self.prompts: List[str] = []

    def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if not self._responses:
            raise GenOpsError("replay generator has no responses left")
        return self._responses.pop(0)

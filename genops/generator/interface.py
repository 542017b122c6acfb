"""
Abstract interface for the external text generator.

The generator turns a natural-language request into operation markup.
genops treats whatever it returns as untrusted text and never assumes
it is well formed; parsing and validation happen downstream.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class TextGenerator(ABC):
    """
    Abstract interface for markup-producing generators.
    """

    @abstractmethod
    def generate(self, prompt: str) -> str:
        """
        Return raw operation markup for the given user request.
        """

"""Shared pytest fixtures for Canvas Chat tests.

Provides:
- ``canonicalizer``: ElementCanonicalizer with a fresh seed counter and a frozen clock
- ``fake_llm_factory``: builds FakeLLM instances that replay scripted fragments
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest

from canvas_chat.services.element_canonicalizer import ElementCanonicalizer, SeedCounter

FROZEN_NOW = 1_700_000_000.0


class FakeLLM:
    """Stands in for LLMClient: replays *fragments*, optionally failing afterwards."""

    def __init__(self, fragments: List[str], error: Optional[Exception] = None):
        self.fragments = fragments
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def stream_text(self, messages, system=None, **kwargs):
        self.calls.append({"messages": messages, "system": system})
        for fragment in self.fragments:
            yield fragment
        if self.error is not None:
            raise self.error

    async def close(self) -> None:
        pass


@pytest.fixture
def canonicalizer() -> ElementCanonicalizer:
    """Fresh canonicalizer: seeds start at 1, timestamps are frozen."""
    return ElementCanonicalizer(SeedCounter(), clock=lambda: FROZEN_NOW)


@pytest.fixture
def fake_llm_factory():
    return FakeLLM

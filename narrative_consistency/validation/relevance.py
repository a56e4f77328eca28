"""
Context Relevance

Scores how likely a character is to matter in the next chapter, in [0, 1].
Additive signals, capped at 1.0.
"""

from __future__ import annotations
from typing import Iterable

from ..contracts.base import EntityType
from ..contracts.novel import NovelState
from ..temporal.state_tracker import EntityStateTracker


ENDING_WEIGHT = 0.4
PROTAGONIST_WEIGHT = 0.3
PLOT_THREAD_WEIGHT = 0.2
RECENT_UPDATE_WEIGHT = 0.1
RECENT_UPDATE_CHAPTERS = 2


def calculate_context_relevance(
    novel_state: NovelState,
    character_id: str,
    tracker: EntityStateTracker,
    active_plot_threads: Iterable[str] = (),
    ending_window_chars: int = 1500
) -> float:
    character = novel_state.get_character(character_id)
    if character is None or not character.name:
        return 0.0

    name = character.name.lower()
    relevance = 0.0

    previous = novel_state.previous_chapter
    if previous is not None and name in previous.content[-ending_window_chars:].lower():
        relevance += ENDING_WEIGHT

    if character.is_protagonist:
        relevance += PROTAGONIST_WEIGHT

    if any(name in thread.lower() for thread in active_plot_threads):
        relevance += PLOT_THREAD_WEIGHT

    last_tracked = tracker.get_current_chapter(EntityType.CHARACTER, character_id)
    if last_tracked is not None and len(novel_state.chapters) - last_tracked <= RECENT_UPDATE_CHAPTERS:
        relevance += RECENT_UPDATE_WEIGHT

    return min(1.0, relevance)

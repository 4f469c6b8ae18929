"""Speech transcript state machine.

The reducer functions are pure: ``(state, input) -> state``. They reconcile
interim and final recognition segments into one transcript string and honour
the editing lock, so text the user is typing is never overwritten by the
recognizer. :class:`TranscriptStateMachine` wires the reducer to an injected
speech capture capability and notifies listeners.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, Optional, Protocol

from .models import (
    Language,
    ListeningPhase,
    SpeechEvent,
    SpeechEventKind,
    TranscriptSource,
    TranscriptState,
)

SpeechCallback = Callable[[SpeechEvent], None]
StateCallback = Callable[[TranscriptState], None]
CommitCallback = Callable[[str], None]


class SpeechCapture(Protocol):
    """Recognizer that streams interim/final segments and ends with END or ERROR."""

    def start(self, locale: str, on_event: SpeechCallback) -> None: ...

    def stop(self) -> None: ...


def start_listening(state: TranscriptState) -> TranscriptState:
    if state.phase == ListeningPhase.LISTENING:
        return state
    return replace(
        state,
        text="",
        source=TranscriptSource.RECOGNIZED_INTERIM,
        phase=ListeningPhase.LISTENING,
        capturing=True,
        final_text="",
    )


def apply_speech_event(state: TranscriptState, event: SpeechEvent) -> TranscriptState:
    if not state.capturing:
        return state

    if event.kind in (SpeechEventKind.END, SpeechEventKind.ERROR):
        return _commit(state)

    if state.locked:
        # finals still accumulate for the commit; only the visible text is frozen
        if event.kind == SpeechEventKind.FINAL:
            return replace(state, final_text=state.final_text + event.text)
        return state

    if event.kind == SpeechEventKind.INTERIM:
        return replace(
            state,
            text=(state.final_text + event.text).strip(),
            source=TranscriptSource.RECOGNIZED_INTERIM,
        )
    if event.kind == SpeechEventKind.FINAL:
        final_text = state.final_text + event.text
        return replace(
            state,
            text=final_text.strip(),
            source=TranscriptSource.RECOGNIZED_INTERIM,
            final_text=final_text,
        )
    return state


def stop_listening(state: TranscriptState) -> TranscriptState:
    """Close the capture session as if the recognizer had ended."""

    return _commit(state)


def _commit(state: TranscriptState) -> TranscriptState:
    if not state.capturing:
        return state
    phase = ListeningPhase.IDLE if state.phase == ListeningPhase.LISTENING else state.phase
    if state.locked:
        return replace(state, phase=phase, capturing=False, final_text="")
    return replace(
        state,
        text=state.final_text.strip(),
        source=TranscriptSource.RECOGNIZED_FINAL,
        phase=phase,
        capturing=False,
        final_text="",
    )


def focus(state: TranscriptState) -> TranscriptState:
    return replace(state, phase=ListeningPhase.EDITING)


def blur(state: TranscriptState) -> TranscriptState:
    if state.phase != ListeningPhase.EDITING:
        return state
    return replace(state, phase=ListeningPhase.IDLE)


def edit(state: TranscriptState, text: str) -> TranscriptState:
    return replace(state, text=text, source=TranscriptSource.USER_EDIT)


def set_lock(state: TranscriptState, enabled: bool) -> TranscriptState:
    return replace(state, lock_enabled=enabled)


def reset(state: TranscriptState) -> TranscriptState:
    return replace(
        state,
        text="",
        source=TranscriptSource.USER_EDIT,
        capturing=False,
        final_text="",
    )


class TranscriptStateMachine:
    """Stateful wrapper binding the reducer to a speech capture capability."""

    def __init__(
        self,
        capture: Optional[SpeechCapture] = None,
        language: Language = Language.EN,
        lock_enabled: bool = True,
        on_change: Optional[StateCallback] = None,
        on_commit: Optional[CommitCallback] = None,
    ) -> None:
        self._capture = capture
        self.language = language
        self._on_change = on_change
        self._on_commit = on_commit
        self._state = TranscriptState(lock_enabled=lock_enabled)

    @property
    def state(self) -> TranscriptState:
        return self._state

    @property
    def text(self) -> str:
        return self._state.text

    @property
    def listening(self) -> bool:
        return self._state.capturing

    def start_listening(self) -> None:
        if self._state.capturing:
            return
        self._set(start_listening(self._state))
        if self._capture is None:
            return
        try:
            self._capture.start(self.language.locale, self.handle_event)
        except Exception as exc:
            logging.warning("Speech capture failed to start: %s", exc)
            self.handle_event(SpeechEvent(kind=SpeechEventKind.ERROR, message=str(exc)))

    def stop_listening(self) -> None:
        if not self._state.capturing:
            return
        if self._capture is not None:
            try:
                self._capture.stop()
            except Exception as exc:  # pragma: no cover - capture specific
                logging.debug("Speech capture failed to stop cleanly: %s", exc)
        self._finish(stop_listening)

    def toggle_listening(self) -> None:
        if self._state.capturing:
            self.stop_listening()
        else:
            self.start_listening()

    def handle_event(self, event: SpeechEvent) -> None:
        if event.kind == SpeechEventKind.ERROR:
            logging.debug("Speech recognition error: %s", event.message)
        if event.kind in (SpeechEventKind.END, SpeechEventKind.ERROR):
            self._finish(lambda state: apply_speech_event(state, event))
            return
        self._set(apply_speech_event(self._state, event))

    def focus(self) -> None:
        self._set(focus(self._state))

    def blur(self) -> None:
        self._set(blur(self._state))

    def edit(self, text: str) -> None:
        self._set(edit(self._state, text))

    def set_lock(self, enabled: bool) -> None:
        self._set(set_lock(self._state, enabled))

    def reset(self) -> None:
        if self._state.capturing and self._capture is not None:
            try:
                self._capture.stop()
            except Exception as exc:  # pragma: no cover - capture specific
                logging.debug("Speech capture failed to stop cleanly: %s", exc)
        self._set(reset(self._state))

    def _finish(self, transition: Callable[[TranscriptState], TranscriptState]) -> None:
        if not self._state.capturing:
            return
        committed = self._state.final_text.strip()
        self._set(transition(self._state))
        if self._on_commit:
            self._on_commit(committed)

    def _set(self, state: TranscriptState) -> None:
        if state == self._state:
            return
        self._state = state
        if self._on_change:
            self._on_change(state)

"""Debounced location search."""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Callable, List, Optional, Protocol

from .models import GeocodeResult, Language, LocationSelection, SearchSession

DEFAULT_DELAY_S = 0.4
MIN_QUERY_LENGTH = 2
DEVICE_LOCATION_NAME = "Current location"

SelectCallback = Callable[[LocationSelection], None]
SessionCallback = Callable[[SearchSession], None]


class Geocoder(Protocol):
    def search(self, query: str, lang: str) -> List[GeocodeResult]: ...


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class ThreadingScheduler:
    """Run callbacks on daemon :class:`threading.Timer` threads."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer


class DebouncedSearchCoordinator:
    """Turn free-text location queries into geocode lookups.

    ``on_query_change`` waits for an inactivity delay before looking up the
    query, ``search_now`` looks it up immediately. Each lookup carries the query
    that triggered it and a generation number; a response whose query no longer
    matches the current input, or that was invalidated by a selection, is
    dropped so a slow answer can never replace newer results.
    """

    def __init__(
        self,
        geocoder: Geocoder,
        scheduler: Optional[Scheduler] = None,
        delay_s: float = DEFAULT_DELAY_S,
        language: Language = Language.EN,
        on_select: Optional[SelectCallback] = None,
        on_change: Optional[SessionCallback] = None,
    ) -> None:
        self._geocoder = geocoder
        self._scheduler = scheduler or ThreadingScheduler()
        self._delay_s = delay_s
        self.language = language
        self._on_select = on_select
        self._on_change = on_change

        self._lock = threading.RLock()
        self._session = SearchSession()
        self._timer: Optional[TimerHandle] = None
        self._generation = 0
        self._cutoff = 0
        self._selection: Optional[LocationSelection] = None

    @property
    def session(self) -> SearchSession:
        with self._lock:
            return replace(self._session, results=list(self._session.results))

    @property
    def selection(self) -> Optional[LocationSelection]:
        return self._selection

    def on_query_change(self, text: str) -> None:
        with self._lock:
            self._session.query = text
            self._cancel_timer()
            self._timer = self._scheduler.call_later(self._delay_s, lambda: self._lookup(text))
            self._notify()

    def search_now(self, text: str) -> List[GeocodeResult]:
        with self._lock:
            self._session.query = text
            self._cancel_timer()
        self._lookup(text)
        return self.session.results

    def select(self, result: GeocodeResult) -> LocationSelection:
        selection = result.to_selection()
        with self._lock:
            self._cancel_timer()
            self._cutoff = self._generation
            self._session.query = result.name
            self._session.visible = False
            self._session.pending = False
            self._notify()
        self._choose(selection)
        return selection

    def use_device_location(self, lat: float, lon: float) -> LocationSelection:
        selection = LocationSelection(lat=float(lat), lon=float(lon), name=DEVICE_LOCATION_NAME)
        self._choose(selection)
        return selection

    def focus(self) -> None:
        with self._lock:
            if self._session.results:
                self._session.visible = True
                self._notify()

    def dismiss(self) -> None:
        with self._lock:
            self._session.visible = False
            self._notify()

    def reset(self) -> None:
        with self._lock:
            self._cancel_timer()
            self._cutoff = self._generation
            self._session = SearchSession()
            self._selection = None
            self._notify()

    def _lookup(self, query: str) -> None:
        with self._lock:
            if self._session.query != query:
                return
            self._timer = None
            if len(query.strip()) < MIN_QUERY_LENGTH:
                self._session.results = []
                self._session.visible = False
                self._session.pending = False
                self._notify()
                return
            self._generation += 1
            token = self._generation
            self._session.pending = True
            lang = self.language.value
            self._notify()

        try:
            results = list(self._geocoder.search(query.strip(), lang))
        except Exception as exc:
            logging.warning("Geocode lookup for %r failed: %s", query, exc)
            self._deliver(token, query, [], failed=True)
            return
        self._deliver(token, query, results)

    def _deliver(self, token: int, query: str, results: List[GeocodeResult], failed: bool = False) -> None:
        with self._lock:
            if token == self._generation:
                self._session.pending = False
            if token <= self._cutoff or query != self._session.query:
                logging.debug("Discarding stale geocode results for %r", query)
                self._notify()
                return
            self._session.results = results
            self._session.visible = bool(results) and not failed
            self._notify()

    def _choose(self, selection: LocationSelection) -> None:
        self._selection = selection
        if self._on_select:
            self._on_select(selection)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _notify(self) -> None:
        if self._on_change:
            self._on_change(self.session)

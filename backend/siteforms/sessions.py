from __future__ import annotations

import logging
import time
import uuid
from collections import OrderedDict
from functools import partial
from typing import Callable, Optional, Tuple

from siteforms.catalog import get_form
from siteforms.config import settings
from siteforms.effects import SimulatedSubmission, SubmissionEffect
from siteforms.form_state import FormStateMachine

logger = logging.getLogger(__name__)


class SessionNotFoundError(KeyError):
    pass


class SessionRegistry:
    """
    In-memory form instances, one per presentation shell. Nothing is persisted.

    A session ends when its form navigates home, when the shell closes it, when
    it sits idle longer than ``session_ttl`` seconds, or when it is the least
    recently used one and ``max_sessions`` would be exceeded.
    """

    def __init__(
        self,
        submit_delay: float = 1.0,
        redirect_delay: float = 3.0,
        home_route: str = "/",
        effect_factory: Optional[Callable[[], SubmissionEffect]] = None,
        session_ttl: float = 1800.0,
        max_sessions: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.submit_delay = submit_delay
        self.redirect_delay = redirect_delay
        self.home_route = home_route
        self.session_ttl = session_ttl
        self.max_sessions = max_sessions
        self._effect_factory = effect_factory or (lambda: SimulatedSubmission(self.submit_delay))
        self._clock = clock
        # least recently used first; values are (machine, last seen)
        self._sessions: "OrderedDict[str, Tuple[FormStateMachine, float]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def create(self, form_id: str) -> Tuple[str, FormStateMachine]:
        schema = get_form(form_id)
        self._evict_expired()
        while len(self._sessions) >= self.max_sessions:
            oldest = next(iter(self._sessions))
            logger.info("Session limit reached, dropping %s", oldest)
            self._drop(oldest)

        session_id = uuid.uuid4().hex
        machine = FormStateMachine(
            schema,
            self._effect_factory(),
            redirect_delay=self.redirect_delay,
            home_route=self.home_route,
            navigate=partial(self._on_navigate, session_id),
        )
        self._sessions[session_id] = (machine, self._clock())
        logger.info("Opened %s session %s", form_id, session_id)
        return session_id, machine

    def get(self, session_id: str) -> FormStateMachine:
        self._evict_expired()
        try:
            machine, _ = self._sessions[session_id]
        except KeyError:
            raise SessionNotFoundError(session_id) from None
        self._sessions[session_id] = (machine, self._clock())
        self._sessions.move_to_end(session_id)
        return machine

    def close(self, session_id: str) -> None:
        if session_id not in self._sessions:
            raise SessionNotFoundError(session_id)
        self._drop(session_id)
        logger.info("Closed session %s", session_id)

    def close_all(self) -> None:
        for machine, _ in self._sessions.values():
            machine.close()
        self._sessions.clear()

    def _drop(self, session_id: str) -> None:
        entry = self._sessions.pop(session_id, None)
        if entry is not None:
            entry[0].close()

    def _evict_expired(self) -> None:
        cutoff = self._clock() - self.session_ttl
        expired = [sid for sid, (_, seen) in self._sessions.items() if seen < cutoff]
        for session_id in expired:
            logger.info("Session %s expired", session_id)
            self._drop(session_id)

    def _on_navigate(self, session_id: str, route: str) -> None:
        # the shell has left the form page
        logger.info("Session %s redirected to %s", session_id, route)
        self._drop(session_id)


registry = SessionRegistry(
    submit_delay=settings.SUBMIT_DELAY_MS / 1000,
    redirect_delay=settings.REDIRECT_DELAY_MS / 1000,
    home_route=settings.HOME_ROUTE,
    session_ttl=settings.SESSION_TTL_SECONDS,
    max_sessions=settings.MAX_SESSIONS,
)


def get_registry() -> SessionRegistry:
    return registry

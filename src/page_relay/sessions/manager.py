"""Authoritative per-tab session and UI-visibility state."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from page_relay.exceptions import ValidationError
from page_relay.extraction.base import is_side_panel_allowed_page
from page_relay.sessions.models import ChatMessage, ChatSession, TabUIState
from page_relay.storage import keys
from page_relay.storage.base import BaseStore

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
VIEWS = ("chat", "history")


def estimate_tokens(text: str | None) -> int:
    if not text:
        return 0
    return max(1, len(text) // CHARS_PER_TOKEN)


class StateManager:
    """Binds tabs to chat sessions and tracks side-panel visibility.

    Maps live in the local storage area: ``tab_ui_states`` keyed by tab id,
    ``chat_sessions`` and ``token_stats`` keyed by session id. Updates from
    this process are serialized through one lock; writers in other processes
    are last-write-wins.
    """

    def __init__(self, storage: BaseStore):
        self.storage = storage
        self._lock = asyncio.Lock()

    async def _load(self) -> tuple[dict, dict]:
        data = await self.storage.get([keys.TAB_UI_STATES, keys.CHAT_SESSIONS])
        return data.get(keys.TAB_UI_STATES) or {}, data.get(keys.CHAT_SESSIONS) or {}

    async def _save(self, ui_states: dict, sessions: dict) -> None:
        await self.storage.set({keys.TAB_UI_STATES: ui_states, keys.CHAT_SESSIONS: sessions})

    @staticmethod
    def _ui_state(ui_states: dict, tab_id: int) -> TabUIState:
        raw = ui_states.get(str(tab_id))
        if raw is None:
            return TabUIState(tab_id=tab_id)
        return TabUIState.from_dict(raw)

    @staticmethod
    def _active_session(sessions: dict, state: TabUIState) -> ChatSession | None:
        raw = sessions.get(state.active_chat_session_id) if state.active_chat_session_id else None
        if raw is None:
            return None
        try:
            session = ChatSession.from_dict(raw)
        except (KeyError, TypeError) as e:
            logger.warning(f"Discarding unreadable session {state.active_chat_session_id}: {e}")
            return None
        if session.tab_id != state.tab_id:
            logger.warning(
                f"Session {session.id} belongs to tab {session.tab_id}, not {state.tab_id}; resetting"
            )
            return None
        return session

    @staticmethod
    def _activate(ui_states: dict, sessions: dict, state: TabUIState, session: ChatSession) -> None:
        sessions[session.id] = session.to_dict()
        state.active_chat_session_id = session.id
        state.current_view = "chat"
        ui_states[str(state.tab_id)] = state.to_dict()

    # Reads

    async def get_tab_state(self, tab_id: int) -> TabUIState:
        ui_states, _ = await self._load()
        return self._ui_state(ui_states, tab_id)

    async def get_session(self, session_id: str) -> ChatSession | None:
        _, sessions = await self._load()
        raw = sessions.get(session_id)
        return ChatSession.from_dict(raw) if raw else None

    async def get_active_session(self, tab_id: int) -> ChatSession | None:
        ui_states, sessions = await self._load()
        return self._active_session(sessions, self._ui_state(ui_states, tab_id))

    async def list_sessions(self, tab_id: int | None = None) -> list[ChatSession]:
        _, sessions = await self._load()
        result = [ChatSession.from_dict(raw) for raw in sessions.values()]
        if tab_id is not None:
            result = [s for s in result if s.tab_id == tab_id]
        return sorted(result, key=lambda s: s.created_at)

    async def get_token_stats(self, session_id: str) -> dict:
        stats = await self.storage.get_value(keys.TOKEN_STATS, {}) or {}
        return stats.get(session_id) or {"inputTokens": 0, "outputTokens": 0, "totalTokens": 0}

    # Writes

    async def ensure_session(self, tab_id: int) -> ChatSession:
        """Return the tab's active session, creating a provisional one if needed."""
        async with self._lock:
            ui_states, sessions = await self._load()
            state = self._ui_state(ui_states, tab_id)
            session = self._active_session(sessions, state)
            if session is not None:
                return session
            session = ChatSession(tab_id=tab_id)
            self._activate(ui_states, sessions, state, session)
            await self._save(ui_states, sessions)
            logger.info(f"Created provisional session {session.id} for tab {tab_id}")
            return session

    async def bind_platform(self, tab_id: int, platform_id: str, model_id: str | None) -> ChatSession:
        """Point the tab's session at a platform/model.

        Provisional sessions re-bind in place; a finalized session bound to a
        different platform or model is left intact and a new provisional
        session becomes active.
        """
        async with self._lock:
            ui_states, sessions = await self._load()
            state = self._ui_state(ui_states, tab_id)
            session = self._active_session(sessions, state)
            if session is None or (
                not session.is_provisional
                and (session.platform_id, session.model_id) != (platform_id, model_id)
            ):
                session = ChatSession(tab_id=tab_id, platform_id=platform_id, model_id=model_id)
                logger.info(f"Tab {tab_id}: new session {session.id} for {platform_id}/{model_id}")
            elif session.is_provisional:
                session.platform_id = platform_id
                session.model_id = model_id
            self._activate(ui_states, sessions, state, session)
            await self._save(ui_states, sessions)
            return session

    async def record_exchange(
        self,
        session_id: str,
        prompt: str,
        reply: str | None,
        model: str | None = None,
        input_tokens: int | None = None,
        output_tokens: int | None = None,
    ) -> ChatSession:
        """Append a prompt/reply pair, finalize the session and add to its token totals.

        ``model`` is the name the provider answered with and is kept on the
        messages only; the session stays bound to the model it was created
        for. Missing usage counts are estimated at four characters per token.
        """
        input_tokens = input_tokens if input_tokens is not None else estimate_tokens(prompt)
        output_tokens = output_tokens if output_tokens is not None else estimate_tokens(reply)
        async with self._lock:
            ui_states, sessions = await self._load()
            raw = sessions.get(session_id)
            if raw is None:
                raise ValidationError(f"Unknown chat session: {session_id}")
            session = ChatSession.from_dict(raw)
            session.messages.append(ChatMessage(role="user", content=prompt, input_tokens=input_tokens, model=model))
            if reply is not None:
                session.messages.append(
                    ChatMessage(role="assistant", content=reply, output_tokens=output_tokens, model=model)
                )
            session.is_provisional = False
            sessions[session.id] = session.to_dict()

            stats = await self.storage.get_value(keys.TOKEN_STATS, {}) or {}
            entry = stats.get(session.id) or {"inputTokens": 0, "outputTokens": 0, "totalTokens": 0}
            entry["inputTokens"] += input_tokens
            entry["outputTokens"] += output_tokens if reply is not None else 0
            entry["totalTokens"] = entry["inputTokens"] + entry["outputTokens"]
            stats[session.id] = entry

            await self.storage.set({keys.CHAT_SESSIONS: sessions, keys.TOKEN_STATS: stats})
            return session

    async def resolve_and_finalize(self, tab_id: int, current_url: str | None) -> dict:
        """Reconnect a side panel to its tab.

        Reuses a consistent active session; missing or inconsistent metadata
        resets to a new provisional session.
        """
        if not is_side_panel_allowed_page(current_url):
            raise ValidationError(f"Side panel is not available on {current_url}")
        async with self._lock:
            ui_states, sessions = await self._load()
            state = self._ui_state(ui_states, tab_id)
            session = self._active_session(sessions, state)
            status = "reused"
            if session is None:
                if state.active_chat_session_id:
                    logger.warning(
                        f"Tab {tab_id} referenced missing session {state.active_chat_session_id}; creating new"
                    )
                session = ChatSession(tab_id=tab_id)
                status = "created"
            state.side_panel_visible = True
            self._activate(ui_states, sessions, state, session)
            await self._save(ui_states, sessions)
            logger.info(f"Side panel for tab {tab_id} finalized ({status} session {session.id})")
            return {"status": status, "sessionId": session.id}

    async def mark_disconnected(self, tab_id: int) -> None:
        """Hide the panel; the session is kept."""
        async with self._lock:
            ui_states, sessions = await self._load()
            state = self._ui_state(ui_states, tab_id)
            state.side_panel_visible = False
            ui_states[str(tab_id)] = state.to_dict()
            await self._save(ui_states, sessions)

    async def switch_session(self, tab_id: int, session_id: str) -> ChatSession:
        async with self._lock:
            ui_states, sessions = await self._load()
            raw = sessions.get(session_id)
            if raw is None:
                raise ValidationError(f"Unknown chat session: {session_id}")
            session = ChatSession.from_dict(raw)
            if session.tab_id != tab_id:
                session.tab_id = tab_id
            self._activate(ui_states, sessions, self._ui_state(ui_states, tab_id), session)
            await self._save(ui_states, sessions)
            return session

    async def set_view(self, tab_id: int, view: str) -> TabUIState:
        if view not in VIEWS:
            raise ValidationError(f"Unknown view: {view}")
        async with self._lock:
            ui_states, sessions = await self._load()
            state = self._ui_state(ui_states, tab_id)
            state.current_view = view
            ui_states[str(tab_id)] = state.to_dict()
            await self._save(ui_states, sessions)
            return state

    async def delete_session(self, session_id: str) -> bool:
        """Delete a session and its token totals; tabs pointing at it lose their active session."""
        async with self._lock:
            ui_states, sessions = await self._load()
            if sessions.pop(session_id, None) is None:
                return False
            for raw in ui_states.values():
                if raw.get("activeChatSessionId") == session_id:
                    raw["activeChatSessionId"] = None
            stats = await self.storage.get_value(keys.TOKEN_STATS, {}) or {}
            stats.pop(session_id, None)
            await self.storage.set(
                {keys.TAB_UI_STATES: ui_states, keys.CHAT_SESSIONS: sessions, keys.TOKEN_STATS: stats}
            )
            logger.info(f"Deleted chat session {session_id}")
            return True

    async def get_extraction_preference(self, tab_id: int) -> bool:
        """Whether page content is extracted for the tab's first chat message. On by default."""
        preferences = await self.storage.get_value(keys.TAB_EXTRACTION_PREFERENCES, {}) or {}
        return bool(preferences.get(str(tab_id), True))

    async def set_extraction_preference(self, tab_id: int, enabled: bool) -> None:
        """Store the preference; a change discards content already extracted for the tab."""
        async with self._lock:
            preferences = await self.storage.get_value(keys.TAB_EXTRACTION_PREFERENCES, {}) or {}
            previous = preferences.get(str(tab_id))
            preferences[str(tab_id)] = enabled
            await self.storage.set({keys.TAB_EXTRACTION_PREFERENCES: preferences})
        if previous != enabled:
            await self.storage.remove([keys.extracted_content_key(tab_id), keys.content_ready_key(tab_id)])
            logger.info(f"Extraction for tab {tab_id} turned {'on' if enabled else 'off'}")

    async def clear_tab(self, tab_id: int) -> None:
        """Forget the tab's UI state and any extraction left behind for it."""
        async with self._lock:
            ui_states, sessions = await self._load()
            ui_states.pop(str(tab_id), None)
            await self._save(ui_states, sessions)
        await self.storage.remove([keys.extracted_content_key(tab_id), keys.content_ready_key(tab_id)])

    async def on_tab_removed(self, tab_id: int) -> None:
        """Tab closed: drop its provisional session and its UI state."""
        active = await self.get_active_session(tab_id)
        if active is not None and active.is_provisional:
            await self.delete_session(active.id)
        await self.clear_tab(tab_id)
        async with self._lock:
            preferences = await self.storage.get_value(keys.TAB_EXTRACTION_PREFERENCES, {}) or {}
            if preferences.pop(str(tab_id), None) is not None:
                await self.storage.set({keys.TAB_EXTRACTION_PREFERENCES: preferences})
        logger.info(f"Cleaned up state for closed tab {tab_id}")

    async def cleanup_stale_tabs(self, open_tab_ids: Iterable[int]) -> list[int]:
        """Remove state for tabs that no longer exist, e.g. after a restart."""
        ui_states, _ = await self._load()
        open_ids = {int(tab_id) for tab_id in open_tab_ids}
        stale = [int(tab_id) for tab_id in ui_states if int(tab_id) not in open_ids]
        for tab_id in stale:
            await self.on_tab_removed(tab_id)
        if stale:
            logger.info(f"Removed state for {len(stale)} stale tab(s)")
        return stale

"""Per-user chat session wiring the core components together."""

from __future__ import annotations

from loguru import logger

from polychat.ai.base import AIService
from polychat.chat.channels import ChannelCache, ChannelList
from polychat.chat.history import PAGE_SIZE, HistoryWindow
from polychat.chat.languages import code_for
from polychat.chat.mailbox import MailboxConsumer
from polychat.chat.models import AI_CHANNEL, VIRTUAL_CHANNELS, Channel, dm_id, partner_of
from polychat.chat.notebook import Notebook
from polychat.chat.paths import StorePaths
from polychat.chat.pipeline import AIContext, MessagePipeline, SendMode, SendOutcome, SendRequest
from polychat.chat.presence import HEARTBEAT_INTERVAL_S, PRESENCE_WINDOW_MS, HeartbeatService, PresenceTracker
from polychat.errors import PolychatError
from polychat.store import DocumentStore


class ChatClient:
    """
    Everything one signed-in user needs: channel list, mailbox, heartbeat,
    the send pipeline, the notebook and live history windows.
    """

    def __init__(
        self,
        store: DocumentStore,
        ai: AIService,
        user_id: str,
        display_name: str,
        target_lang: str = "Spanish",
        paths: StorePaths | None = None,
        cache: ChannelCache | None = None,
        ai_timeout_s: float = 30.0,
        page_size: int = PAGE_SIZE,
        presence_window_ms: int = PRESENCE_WINDOW_MS,
        heartbeat_interval_s: float = HEARTBEAT_INTERVAL_S,
    ):
        self.store = store
        self.ai = ai
        self.user_id = user_id
        self.display_name = display_name
        self.target_lang = target_lang
        self.paths = paths or StorePaths()
        self.page_size = page_size
        self.presence_window_ms = presence_window_ms
        self.ai_context = AIContext()
        self.last_error: str | None = None

        self.channels = ChannelList(cache=cache)
        self.mailbox = MailboxConsumer(store, self.paths, user_id, self.channels)
        self.heartbeat = HeartbeatService(store, self.paths, user_id, interval_s=heartbeat_interval_s)
        self.pipeline = MessagePipeline(store, ai, self.paths, user_id, display_name, timeout_s=ai_timeout_s)
        self.notebook = Notebook(store, ai, self.paths, user_id, timeout_s=ai_timeout_s)
        self._histories: dict[str, HistoryWindow] = {}
        self._presence: dict[str, PresenceTracker] = {}

    @property
    def target_lang_code(self) -> str:
        return code_for(self.target_lang)

    @property
    def active_channel_id(self) -> str:
        return self.channels.active_channel_id

    # ---- lifecycle ---------------------------------------------------------

    async def start(self) -> None:
        self.mailbox.start()
        await self.heartbeat.start()
        logger.info("Chat session started for {}", self.user_id)

    async def stop(self) -> None:
        self.heartbeat.stop()
        self.mailbox.stop()
        await self.mailbox.drain()
        for window in self._histories.values():
            window.close()
        for tracker in self._presence.values():
            tracker.stop()
        self._histories.clear()
        self._presence.clear()

    # ---- channels ----------------------------------------------------------

    def open_channel(self, channel_id: str, name: str | None = None) -> HistoryWindow | None:
        """Activate a channel and return its history window (None for non-chat views)."""
        self.channels.open(channel_id, name)
        self.last_error = None
        if channel_id in VIRTUAL_CHANNELS and channel_id != AI_CHANNEL:
            return None
        return self.history(channel_id)

    def start_dm(self, partner_id: str, name: str) -> str:
        channel_id = dm_id(self.user_id, partner_id)
        self.open_channel(channel_id, name)
        return channel_id

    def delete_channel(self, channel_id: str) -> None:
        self.channels.delete(channel_id)
        window = self._histories.pop(channel_id, None)
        if window:
            window.close()

    def history(self, channel_id: str) -> HistoryWindow:
        window = self._histories.get(channel_id)
        if window is None:
            collection = self.paths.messages_for(channel_id, self.user_id)
            window = HistoryWindow(self.store, collection, page_size=self.page_size)
            window.open()
            self._histories[channel_id] = window
        return window

    def presence_for(self, channel_id: str) -> PresenceTracker | None:
        """Presence tracker for a DM partner; None for channels that are always online."""
        partner = partner_of(channel_id, self.user_id)
        if partner is None:
            return None
        tracker = self._presence.get(partner)
        if tracker is None:
            tracker = PresenceTracker(self.store, self.paths, partner, window_ms=self.presence_window_ms)
            tracker.start()
            self._presence[partner] = tracker
        return tracker

    @property
    def channel_list(self) -> list[Channel]:
        return self.channels.channels

    # ---- sending -----------------------------------------------------------

    async def send(self, text: str, mode: SendMode = "english", channel_id: str | None = None) -> SendOutcome | None:
        """Send to a channel (the active one by default). Surfaced failures land in ``last_error``."""
        channel_id = channel_id or self.active_channel_id
        self.last_error = None
        request = SendRequest(
            raw_input=text,
            mode=mode,
            channel_id=channel_id,
            target_lang=self.target_lang,
            target_lang_code=self.target_lang_code,
            ai_context=self.ai_context if channel_id == AI_CHANNEL else None,
        )
        try:
            outcome = await self.pipeline.send(request)
        except PolychatError as e:
            logger.warning("Send to {} failed: {}", channel_id, e)
            self.last_error = str(e)
            return None
        self.last_error = outcome.error
        return outcome

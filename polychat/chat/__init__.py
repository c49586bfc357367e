"""Chat core: channels, mailbox, send pipeline, history and presence."""

from polychat.chat.channels import ChannelCache, ChannelList, delete_channel, upsert_channel
from polychat.chat.client import ChatClient
from polychat.chat.history import HistoryWindow
from polychat.chat.mailbox import MailboxConsumer, send_notification
from polychat.chat.models import Channel, ChannelEntry, Correction, Message, User, VocabEntry, dm_id
from polychat.chat.paths import StorePaths
from polychat.chat.pipeline import AIContext, MessagePipeline, SendOutcome, SendRequest
from polychat.chat.presence import HeartbeatService, PresenceTracker, channel_is_online, is_online

__all__ = [
    "AIContext",
    "Channel",
    "ChannelCache",
    "ChannelEntry",
    "ChannelList",
    "ChatClient",
    "Correction",
    "HeartbeatService",
    "HistoryWindow",
    "MailboxConsumer",
    "Message",
    "MessagePipeline",
    "PresenceTracker",
    "SendOutcome",
    "SendRequest",
    "StorePaths",
    "User",
    "VocabEntry",
    "channel_is_online",
    "delete_channel",
    "dm_id",
    "is_online",
    "send_notification",
    "upsert_channel",
]

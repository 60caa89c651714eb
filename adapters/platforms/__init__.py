from adapters.platforms.slack import SlackAdapter
from adapters.platforms.google_chat import GoogleChatAdapter
from adapters.platforms.teams import TeamsAdapter

__all__ = [
    "SlackAdapter",
    "GoogleChatAdapter",
    "TeamsAdapter",
]

from mixtape_player.utils.http_client import HttpError, build_session, fetch_json, post_json
from mixtape_player.utils.logging import setup_logging
from mixtape_player.utils.timers import TimerSlot

__all__ = ["HttpError", "build_session", "fetch_json", "post_json", "setup_logging", "TimerSlot"]

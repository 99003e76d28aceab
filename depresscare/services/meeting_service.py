import secrets
from typing import Optional

from ..core.config import settings

class MeetingLinkGenerator:
    """Generate opaque video-session links for booked appointments."""

    def __init__(self, base_url: Optional[str] = None):
        self.base_url = (base_url or settings.MEETING_BASE_URL).rstrip("/")

    def generate(self) -> str:
        return f"{self.base_url}/{secrets.token_hex(16)}"

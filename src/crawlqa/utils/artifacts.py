"""
Run artifacts: a session directory per run holding screenshots.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import aiofiles

logger = logging.getLogger(__name__)


class ArtifactStore:
    """
    Creates `<base_dir>/<domain>_<timestamp>/screenshots` and writes images into it.
    """

    def __init__(self, base_url: str, base_dir: str = "crawl_sessions",
                 session_id: Optional[str] = None):
        self.base_url = base_url
        self.domain = self._extract_domain(base_url)
        self.session_id = session_id or self._generate_session_id()
        self.session_dir = Path(base_dir) / self.session_id
        self.screenshots_dir = self.session_dir / "screenshots"
        self.screenshots_dir.mkdir(parents=True, exist_ok=True)
        self.screenshots_taken: List[str] = []

        logger.info(f"📁 Session directory created: {self.session_dir}")

    def _extract_domain(self, url: str) -> str:
        if '//' in url:
            domain = url.split('//')[1].split('/')[0]
        else:
            domain = url.split('/')[0]
        return domain.replace(':', '_').replace('.', '_')

    def _generate_session_id(self) -> str:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        return f"{self.domain}_{timestamp}"

    async def save_screenshot(self, data: bytes, label: str) -> Optional[str]:
        """Write PNG bytes; returns the path, or None when the write fails."""
        if not data:
            return None

        filename = f"{len(self.screenshots_taken) + 1:04d}_{sanitize_filename(label) or 'shot'}.png"
        path = self.screenshots_dir / filename
        try:
            async with aiofiles.open(path, 'wb') as f:
                await f.write(data)
        except OSError as e:
            logger.warning(f"⚠️ Could not write screenshot {filename}: {e}")
            return None

        self.screenshots_taken.append(str(path))
        logger.debug(f"📸 Screenshot saved: {filename}")
        return str(path)


def sanitize_filename(text: str) -> str:
    """Keep alphanumerics, dashes and underscores; cap the length."""
    if not text:
        return ""
    safe_chars = "".join(c for c in text if c.isalnum() or c in (' ', '-', '_'))
    return safe_chars.replace(' ', '_')[:50]

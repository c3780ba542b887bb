"""Messages database watcher - turns new chat.db rows into message events

The Messages app appends every sent and received message to chat.db. The
watcher remembers the highest ROWID it has seen and polls for rows above
it, so only messages that arrive after startup are delivered.
"""

import asyncio
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional

from src.takeover.models import MessageEvent, ThreadInfo
from src.utils.logger_config import get_logger

from .config import MessageConfig
from .decoder import extract_message_text
from .exceptions import MessageDatabaseError

logger = get_logger(__name__)

# Seconds between the Unix epoch and 2001-01-01 00:00:00 UTC
APPLE_EPOCH_OFFSET = 978307200
# Dates above this are nanoseconds (macOS 10.13+), below it seconds
NANOSECOND_DATE_THRESHOLD = 1_000_000_000_000

NEW_MESSAGES_QUERY = """
    SELECT
        m.ROWID,
        m.text,
        m.attributedBody,
        m.date,
        m.is_from_me,
        h.id,
        c.chat_identifier
    FROM message m
    JOIN chat_message_join cmj ON cmj.message_id = m.ROWID
    JOIN chat c ON c.ROWID = cmj.chat_id
    LEFT JOIN handle h ON h.ROWID = m.handle_id
    WHERE m.ROWID > ?
    ORDER BY m.ROWID ASC
    LIMIT ?
"""

THREADS_QUERY = """
    SELECT
        c.chat_identifier,
        c.display_name,
        (SELECT h.id FROM chat_handle_join chj
         JOIN handle h ON h.ROWID = chj.handle_id
         WHERE chj.chat_id = c.ROWID
         ORDER BY h.ROWID LIMIT 1)
    FROM chat c
"""


def convert_apple_timestamp(apple_date: Optional[int]) -> datetime:
    """
    Convert a chat.db date to a local naive datetime

    Args:
        apple_date: Seconds or nanoseconds since 2001-01-01 UTC

    Returns:
        Local datetime, or now if the value is missing
    """
    if not apple_date:
        return datetime.now()

    seconds = apple_date
    if apple_date > NANOSECOND_DATE_THRESHOLD:
        seconds = apple_date / 1_000_000_000
    return datetime.fromtimestamp(seconds + APPLE_EPOCH_OFFSET)


class MessagesDatabaseWatcher:
    """Polls the Messages chat.db for rows newer than the last seen ROWID"""

    def __init__(self, config: MessageConfig, user_identifier: Optional[str] = None):
        """
        Initialize the watcher

        Args:
            config: Transport configuration (database path, poll interval, batch size)
            user_identifier: Reported as the sender of the user's own messages
        """
        self.db_path = Path(config.chat_db_path).expanduser()
        self.poll_interval = config.poll_interval_seconds
        self.batch_size = config.poll_batch_size
        self.user_identifier = user_identifier or "me"

        # Runtime state
        self.last_rowid: Optional[int] = None
        self.is_running = False
        self.last_error: Optional[str] = None
        self.messages_seen = 0

    def _connect(self) -> sqlite3.Connection:
        if not self.db_path.exists():
            raise MessageDatabaseError(f"Messages database not found: {self.db_path}")
        try:
            return sqlite3.connect(f"file:{self.db_path}?mode=ro", uri=True)
        except sqlite3.Error as e:
            raise MessageDatabaseError(f"Cannot open {self.db_path}: {e}")

    def get_max_rowid(self) -> int:
        """Highest message ROWID currently in the database"""
        conn = self._connect()
        try:
            row = conn.execute("SELECT MAX(ROWID) FROM message").fetchone()
        except sqlite3.Error as e:
            raise MessageDatabaseError(f"Error reading message table: {e}")
        finally:
            conn.close()
        return row[0] or 0

    def initialize(self) -> int:
        """
        Start watching from the current end of the database

        Returns:
            The starting ROWID
        """
        self.last_rowid = self.get_max_rowid()
        logger.info(f"Watching {self.db_path} from ROWID {self.last_rowid}")
        return self.last_rowid

    def fetch_new_rows(self, last_rowid: int) -> List[Dict[str, Any]]:
        """
        Read message rows above last_rowid

        Args:
            last_rowid: Last ROWID that was delivered

        Returns:
            Row dictionaries in ROWID order
        """
        conn = self._connect()
        try:
            rows = conn.execute(NEW_MESSAGES_QUERY, (last_rowid, self.batch_size)).fetchall()
        except sqlite3.Error as e:
            raise MessageDatabaseError(f"Error reading new messages: {e}")
        finally:
            conn.close()

        return [
            {
                "rowid": rowid,
                "text": extract_message_text(text, attributed_body),
                "date": date,
                "is_from_me": bool(is_from_me),
                "handle": handle,
                "chat_identifier": chat_identifier,
            }
            for rowid, text, attributed_body, date, is_from_me, handle, chat_identifier in rows
        ]

    def _row_to_event(self, row: Dict[str, Any]) -> Optional[MessageEvent]:
        # Attachments, reactions and other rows without text carry no content
        if not row["text"]:
            logger.debug(f"ROWID {row['rowid']} has no text content, skipping")
            return None

        is_from_self = row["is_from_me"]
        sender = self.user_identifier if is_from_self else (row["handle"] or row["chat_identifier"])
        return MessageEvent(
            thread_id=row["chat_identifier"],
            text=row["text"],
            sender=sender,
            timestamp=convert_apple_timestamp(row["date"]),
            is_from_self=is_from_self,
        )

    async def poll_once(self) -> List[MessageEvent]:
        """
        Perform a single polling cycle

        Returns:
            Events for the new rows, in arrival order
        """
        loop = asyncio.get_running_loop()
        if self.last_rowid is None:
            await loop.run_in_executor(None, self.initialize)
            return []

        rows = await loop.run_in_executor(None, self.fetch_new_rows, self.last_rowid)
        if not rows:
            return []

        self.last_rowid = max(row["rowid"] for row in rows)
        events = [event for event in map(self._row_to_event, rows) if event is not None]
        self.messages_seen += len(events)
        logger.debug(f"Polled {len(rows)} new rows, {len(events)} message events")
        return events

    async def events(self) -> AsyncIterator[MessageEvent]:
        """
        Yield message events until stopped
        """
        if self.is_running:
            logger.warning("Messages watcher is already running")
            return

        self.is_running = True
        logger.info(f"Starting Messages watcher (interval: {self.poll_interval}s)")
        try:
            while self.is_running:
                try:
                    events = await self.poll_once()
                except MessageDatabaseError as e:
                    # Continue polling even after errors
                    logger.error(f"Polling cycle failed: {e}")
                    self.last_error = str(e)
                    events = []

                for event in events:
                    yield event

                if self.is_running:
                    await asyncio.sleep(self.poll_interval)
        finally:
            self.is_running = False
            logger.info("Messages watcher stopped")

    def stop(self) -> None:
        if self.is_running:
            logger.info("Stopping Messages watcher...")
            self.is_running = False

    def list_threads(self, filter_text: Optional[str] = None) -> List[ThreadInfo]:
        """
        List chats with their display names

        Args:
            filter_text: Keep chats whose identifier equals it or whose name contains it

        Returns:
            ThreadInfo per chat; unnamed chats fall back to their first participant
        """
        conn = self._connect()
        try:
            rows = conn.execute(THREADS_QUERY).fetchall()
        except sqlite3.Error as e:
            raise MessageDatabaseError(f"Error listing chats: {e}")
        finally:
            conn.close()

        threads = []
        needle = filter_text.lower() if filter_text else None
        for chat_identifier, display_name, first_handle in rows:
            name = display_name or first_handle or chat_identifier
            if needle and chat_identifier.lower() != needle and needle not in (name or "").lower():
                continue
            threads.append(ThreadInfo(thread_id=chat_identifier, display_name=name))
        return threads

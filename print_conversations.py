"""Print every saved voice conversation with its session summary.

It reuses the same `DATABASE_DIR` behavior as the application via
`utils.database_init.AsyncDatabaseInitializer`.

Run: set the `DATABASE_DIR` environment variable and run
      `python print_conversations.py [owner]`.
"""
import asyncio
import sys
from datetime import datetime
from typing import Optional

from dal.conversation_dal import ConversationDAL
from services.realtime.summary_builder import build_summary
from utils.database_init import AsyncDatabaseInitializer


async def main(owner: Optional[str] = None) -> None:
    """Print conversations, newest first, optionally only those of `owner`."""
    conversation_dal = ConversationDAL(AsyncDatabaseInitializer())
    if owner:
        records = await conversation_dal.list_for_owner(owner)
    else:
        records = await conversation_dal.list_conversations()

    for record in records:
        when = datetime.fromtimestamp(record.created_at or 0).isoformat(timespec="seconds")
        print(f"Conversation {record.id} | owner={record.owner} | reason={record.reason} | {when}")
        for message in record.messages:
            print(f"  {message.get('role')}: {message.get('text')}")
        print()
        print(build_summary(record.messages).plain_text)
        print()


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else None))

"""
Contact form messages.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Optional

from portfolio.db import DbClient, MessageRecord, new_id
from portfolio.errors import BadRequestError, NotFoundError

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 100
MAX_MESSAGE_LENGTH = 2000
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class MessageService:
    def __init__(self, db: DbClient):
        self.db = db

    def submit_message(
        self, name: Optional[str], email: Optional[str], message: Optional[str]
    ) -> MessageRecord:
        name = (name or "").strip()
        email = (email or "").strip()
        message = (message or "").strip()
        if not name or not email or not message:
            raise BadRequestError("Please provide name, email and message")
        if not EMAIL_PATTERN.match(email):
            raise BadRequestError("Please provide a valid email address")
        if len(name) > MAX_NAME_LENGTH:
            raise BadRequestError(f"Name cannot exceed {MAX_NAME_LENGTH} characters")
        if len(message) > MAX_MESSAGE_LENGTH:
            raise BadRequestError(
                f"Message cannot exceed {MAX_MESSAGE_LENGTH} characters"
            )

        record = self.db.create_message(
            MessageRecord(
                message_id=new_id(),
                name=name,
                email=email,
                message=message,
                created_at=time.time(),
            )
        )
        logger.info("New contact message %s from %s", record.message_id, email)
        return record

    def list_messages(self) -> list[MessageRecord]:
        return self.db.list_messages()

    def get_message(self, message_id: str) -> MessageRecord:
        message = self.db.get_message(message_id)
        if not message:
            raise NotFoundError("Message not found")
        return message

    def mark_read(self, message_id: str) -> MessageRecord:
        message = self.db.mark_message_read(message_id)
        if not message:
            raise NotFoundError("Message not found")
        return message

    def delete_message(self, message_id: str) -> None:
        if not self.db.delete_message(message_id):
            raise NotFoundError("Message not found")

"""Message commands: perform a store operation, then notify the online peer."""

from app.commands.messages.delete_conversation_command import DeleteConversationCommand
from app.commands.messages.delete_message_command import DeleteMessageCommand
from app.commands.messages.mark_conversation_read_command import (
    MarkConversationReadCommand,
)
from app.commands.messages.mark_message_read_command import MarkMessageReadCommand
from app.commands.messages.send_message_command import SendMessageCommand

__all__ = [
    "DeleteConversationCommand",
    "DeleteMessageCommand",
    "MarkConversationReadCommand",
    "MarkMessageReadCommand",
    "SendMessageCommand",
]

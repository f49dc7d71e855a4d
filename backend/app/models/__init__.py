# app/models/__init__.py
"""
Database models module initialization.
Exports all database models for convenient imports throughout the application.

Models exported:
- Chat: Tutor chat (topic, level, language, provider)
- Message: One turn of a chat, ordered by seq
- ChatSummary: Rolling summary + watermark for a chat's older turns
"""
from .chat import Chat
from .message import Message
from .chat_summary import ChatSummary

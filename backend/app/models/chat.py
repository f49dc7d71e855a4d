# app/models/chat.py
"""
Database model for tutor chats.
A chat is one practice conversation: its topic (free talk, roleplay
scenario or conversation topic), learner level and target language,
plus the AI provider it was started with.
"""
import uuid
from tortoise import fields, models


class Chat(models.Model):
    """
    Chat database model.

    Relationships:
    - Has many Message turns (one-to-many, via related_name in Message model)
    - Has at most one ChatSummary (one-to-one, via related_name in ChatSummary model)
    """
    id = fields.UUIDField(pk=True, default=uuid.uuid4)
    title = fields.CharField(max_length=128, null=True)
    topic_type = fields.CharField(max_length=16, default="general")  # general | roleplay | topic
    topic_key = fields.CharField(max_length=64, null=True)  # Scenario / topic id when topic_type != general
    level = fields.CharField(max_length=16, default="intermediate")
    language = fields.CharField(max_length=8, default="en")  # Learning language code
    mother_language = fields.CharField(max_length=8, default="en")
    thread_id = fields.CharField(max_length=128, null=True)  # Managed-history providers only
    ai_provider = fields.CharField(max_length=32)
    ai_model = fields.CharField(max_length=64, null=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "chats"

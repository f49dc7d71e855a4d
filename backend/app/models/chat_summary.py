# app/models/chat_summary.py
from tortoise import fields, models


class ChatSummary(models.Model):
    """
    Rolling summary of the turns older than the context window.

    last_message_index is the watermark: how many older-segment turns are
    already folded into content. It never decreases for a chat.
    """
    id = fields.IntField(pk=True)
    chat = fields.OneToOneField("models.Chat", related_name="summary", on_delete=fields.CASCADE)
    content = fields.TextField(default="")
    last_message_index = fields.IntField(default=0)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "chat_summaries"

# app/models/message.py
import uuid
from tortoise import fields, models


class Message(models.Model):
    id = fields.UUIDField(pk=True, default=uuid.uuid4)
    chat = fields.ForeignKeyField("models.Chat", related_name="messages", on_delete=fields.CASCADE)

    seq = fields.IntField()  # Monotonic per chat; the log is ordered by it
    role = fields.CharField(max_length=16)  # user | assistant
    content = fields.TextField()

    # Set on learner turns that came in as speech
    audio_format = fields.CharField(max_length=16, null=True)
    # Analysis of the learner turn, filled in once the tutor responded
    analysis = fields.JSONField(null=True)

    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "messages"
        unique_together = (("chat", "seq"),)

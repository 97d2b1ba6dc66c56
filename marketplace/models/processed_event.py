from tortoise import fields, models
import uuid


class ProcessedEvent(models.Model):
    """
    Dedupe keys for at-least-once inputs: outbox event ids handled by the dispatcher
    and gateway charge references already credited to a wallet.
    """
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    event_id = fields.CharField(max_length=128, unique=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "processed_events"

from tortoise import fields, models
import uuid


class OutboxEvent(models.Model):
    """
    Notification triggers stored atomically with the order/ledger change that caused them.
    The poller dispatches them later, so a failed delivery never rolls back money movement.
    """
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    aggregate_type = fields.CharField(max_length=64) # e.g., 'order', 'wallet'
    aggregate_id = fields.UUIDField(null=True) # ID of the entity that generated the event
    event_type = fields.CharField(max_length=128) # e.g., 'order.status_changed.v1'
    payload = fields.JSONField() # The actual event data
    published = fields.BooleanField(default=False)
    attempts = fields.IntField(default=0)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "outbox_events"

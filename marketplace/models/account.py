from tortoise import fields, models
import uuid


class User(models.Model):
    """Identity record resolved by the authentication collaborator."""
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    email = fields.CharField(max_length=255, unique=True)
    first_name = fields.CharField(max_length=128, default="")
    last_name = fields.CharField(max_length=128, default="")
    phone_number = fields.CharField(max_length=32, null=True)
    is_admin = fields.BooleanField(default=False)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "users"
        indexes = [
            ("is_admin",),  # Admin fan-out for payment notifications
        ]


class Kitchen(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    owner = fields.ForeignKeyField("models.User", related_name="kitchens")
    name = fields.CharField(max_length=255)
    is_active = fields.BooleanField(default=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "kitchens"
        indexes = [
            ("owner_id",),  # "does this user own a kitchen" lookups
        ]

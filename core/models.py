"""
Core models module containing abstract base classes.
All models in the application should inherit from these base classes.

Usage:
    - AbstractUUID: Provides UUID primary key
    - AbstractMonitor: Provides created_at and updated_at timestamps
    - AbstractActive: Provides is_active soft delete functionality
    - AbstractStatus: Provides ACTIVE/DELETED entity status, independent of any is_active flag
    - AbstractBaseModel: Combines UUID + Monitor + Active
"""
import uuid

from django.db import models
from phonenumber_field.modelfields import PhoneNumberField

from . import EntityStatus
from .validators import validate_possible_number


class ActiveManager(models.Manager):
    """Manager that returns only active (non-deleted) records."""

    def get_queryset(self):
        return super().get_queryset().filter(is_active=True)


class LiveManager(models.Manager):
    """Manager that returns only records whose status is ACTIVE."""

    def get_queryset(self):
        return super().get_queryset().filter(status=EntityStatus.ACTIVE)


class AbstractUUID(models.Model):
    """
    Abstract base model that provides UUID primary key.
    Inherit from this when you need UUID as primary key.
    """
    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record"
    )

    class Meta:
        abstract = True


class AbstractMonitor(models.Model):
    """
    Abstract base model that provides timestamp fields.
    Inherit from this when you need created_at and updated_at tracking.
    """
    created_at = models.DateTimeField(
        auto_now_add=True,
        help_text="Timestamp when the record was created"
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="Timestamp when the record was last updated"
    )

    class Meta:
        abstract = True
        ordering = ['-created_at']


class AbstractActive(models.Model):
    """
    Abstract base model that provides soft delete functionality.
    Inherit from this when you need is_active flag for soft deletion.
    """
    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Soft delete flag. Set to False to deactivate."
    )

    # Managers
    objects = ActiveManager()

    class Meta:
        abstract = True

    def soft_delete(self):
        """Soft delete the record by setting is_active to False."""
        self.is_active = False
        self.save(update_fields=['is_active', 'updated_at'] if hasattr(self, 'updated_at') else ['is_active'])


class AbstractStatus(models.Model):
    """
    Abstract base model for records that carry their own is_active switch
    and therefore soft delete through a separate status column.

    `objects` sees every row (admins need deleted rows to restore them),
    `live_objects` only ACTIVE ones.
    """
    status = models.CharField(
        max_length=20,
        choices=EntityStatus.CHOICES,
        default=EntityStatus.ACTIVE,
        db_index=True,
        help_text="Entity status. DELETED rows are never loaded by live queries."
    )

    objects = models.Manager()
    live_objects = LiveManager()

    class Meta:
        abstract = True

    def soft_delete(self):
        self.status = EntityStatus.DELETED
        self.save(update_fields=['status', 'updated_at'] if hasattr(self, 'updated_at') else ['status'])

    def restore(self):
        self.status = EntityStatus.ACTIVE
        self.save(update_fields=['status', 'updated_at'] if hasattr(self, 'updated_at') else ['status'])

    @property
    def is_deleted(self):
        return self.status == EntityStatus.DELETED


class AbstractBaseModel(AbstractUUID, AbstractMonitor, AbstractActive):
    """
    Complete abstract base model combining:
    - UUID primary key
    - created_at / updated_at timestamps
    - is_active soft delete flag

    Use this as the default base for most models.
    """

    class Meta:
        abstract = True
        ordering = ['-created_at']


class PossiblePhoneNumberField(PhoneNumberField):
    """Less strict field for phone numbers written to database."""

    default_validators = [validate_possible_number]

import uuid

from django.core.exceptions import ValidationError
from django.db import models

from towns.exceptions import UnknownTown


class ParticipationLevel(models.TextChoices):
    """How visibly a business takes part in its town network"""
    STANDARD = 'standard', 'Standard'
    LEADER = 'leader', 'Leader'
    HIDDEN = 'hidden', 'Hidden'


class Town(models.Model):
    """
    A local town network. Flow edges, season overrides and memberships
    all hang off a town.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255, help_text="Display name of the town")
    slug = models.SlugField(max_length=120, unique=True)
    region = models.CharField(max_length=255, blank=True, default="")
    timezone = models.CharField(
        max_length=64,
        default='America/Chicago',
        help_text="IANA timezone used for season and route window detection"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'towns_town'
        ordering = ['name']

    def __str__(self):
        return self.name

    @classmethod
    def get_or_raise(cls, town_id) -> "Town":
        """Fetch a town by id, raising UnknownTown instead of DoesNotExist."""
        try:
            return cls.objects.get(id=town_id)
        except (cls.DoesNotExist, ValueError, ValidationError):
            # ValidationError covers malformed UUID strings
            raise UnknownTown(town_id)

    @classmethod
    def ensure_exists(cls, town_id) -> None:
        """Raise UnknownTown unless the town is stored."""
        try:
            found = cls.objects.filter(id=town_id).exists()
        except (ValueError, ValidationError):
            found = False
        if not found:
            raise UnknownTown(town_id)


class TownMembershipQuerySet(models.QuerySet):

    def counted(self):
        """Memberships that count toward milestones and graph contribution."""
        return self.filter(active=True).exclude(participation_level=ParticipationLevel.HIDDEN)


class TownMembership(models.Model):
    """
    A business taking part in a town network.
    Hidden or inactive memberships never count toward milestones.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    town = models.ForeignKey(Town, on_delete=models.CASCADE, related_name='memberships')
    business_id = models.CharField(max_length=255, help_text="Id of the business in the owning store")
    business_name = models.CharField(max_length=255, blank=True, default="")
    business_type = models.CharField(
        max_length=64,
        blank=True,
        default="other",
        help_text="Free-form business type, mapped onto a flow category"
    )
    participation_level = models.CharField(
        max_length=20,
        choices=ParticipationLevel.choices,
        default=ParticipationLevel.STANDARD,
    )
    active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = TownMembershipQuerySet.as_manager()

    class Meta:
        db_table = 'towns_membership'
        unique_together = ('town', 'business_id')
        indexes = [
            models.Index(fields=['town', 'active'], name='towns_membership_active_idx'),
        ]

    def __str__(self):
        return f"{self.business_name or self.business_id} in {self.town.name} ({self.participation_level})"
import uuid

from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone


class WaitlistEntry(models.Model):
    """
    A guest queued for a sold-out retreat, either for a specific room or for
    any room (room is null). `position` is FIFO within its (retreat, room) scope.
    """

    STATUS_WAITING = "waiting"
    STATUS_OFFERED = "offered"
    STATUS_ACCEPTED = "accepted"
    STATUS_DECLINED = "declined"
    STATUS_EXPIRED = "expired"

    STATUS_CHOICES = [
        (STATUS_WAITING, "Waiting"),
        (STATUS_OFFERED, "Offered"),
        (STATUS_ACCEPTED, "Accepted"),
        (STATUS_DECLINED, "Declined"),
        (STATUS_EXPIRED, "Expired"),
    ]

    OPEN_STATUSES = (STATUS_WAITING, STATUS_OFFERED)

    retreat = models.ForeignKey("retreats.Retreat", on_delete=models.CASCADE, related_name="waitlist_entries")
    room = models.ForeignKey(
        "retreats.Room",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="waitlist_entries",
        help_text="Empty means any room",
    )

    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100, blank=True)
    email = models.EmailField()
    phone = models.CharField(max_length=40, blank=True)
    guests_count = models.PositiveSmallIntegerField(default=1, validators=[MinValueValidator(1)])
    language = models.CharField(max_length=8, default="en")
    notes = models.TextField(blank=True)

    position = models.PositiveIntegerField()
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_WAITING, db_index=True)

    response_token = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    offered_room = models.ForeignKey(
        "retreats.Room",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="Room whose freed seats the current offer holds",
    )
    offered_at = models.DateTimeField(null=True, blank=True)
    offer_expires_at = models.DateTimeField(null=True, blank=True, db_index=True)
    responded_at = models.DateTimeField(null=True, blank=True)
    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="waitlist_entries",
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["retreat_id", "position", "id"]
        verbose_name_plural = "waitlist entries"
        indexes = [
            models.Index(fields=["retreat", "room", "status", "position"], name="waitlist_scope_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["retreat", "email"],
                condition=models.Q(status__in=["waiting", "offered"]),
                name="waitlist_one_open_entry_per_email",
            ),
        ]

    def __str__(self):
        scope = self.room.name if self.room_id else "any room"
        return f"#{self.position} {self.email} ({scope}, {self.status})"

    @property
    def is_open(self) -> bool:
        return self.status in self.OPEN_STATUSES

    def offer_is_expired(self, now=None) -> bool:
        now = now or timezone.now()
        return self.status == self.STATUS_OFFERED and self.offer_expires_at is not None and self.offer_expires_at <= now

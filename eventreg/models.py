from django.conf import settings
from django.db import models
from django.db.models import Q
from django.core.exceptions import ValidationError


class Branch(models.Model):
    name = models.CharField(max_length=200)
    short_code = models.CharField(max_length=20, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']
        verbose_name_plural = 'Branches'

    def __str__(self):
        return self.name


class StudentProfile(models.Model):
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='profile',
        related_query_name='profile'
    )
    # Nullable so that staff accounts created outside signup still get a profile
    student_id = models.CharField(max_length=20, unique=True, null=True, blank=True)
    full_name = models.CharField(max_length=100, blank=True)
    phone = models.CharField(max_length=16, blank=True)
    branch = models.ForeignKey(Branch, on_delete=models.SET_NULL, null=True, blank=True, related_name='students')
    graduation_year = models.PositiveSmallIntegerField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.user.email} - {self.student_id or 'no student id'}"


class Venue(models.Model):
    name = models.CharField(max_length=200)
    location = models.CharField(max_length=255, blank=True)
    capacity = models.PositiveIntegerField()
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class RegistrationStatus(models.TextChoices):
    PENDING = 'PENDING', 'Pending'
    CONFIRMED = 'CONFIRMED', 'Confirmed'
    ATTENDED = 'ATTENDED', 'Attended'
    CANCELLED = 'CANCELLED', 'Cancelled'
    WAITLISTED = 'WAITLISTED', 'Waitlisted'


class Event(models.Model):
    STATUS_DRAFT = 'draft'
    STATUS_ACTIVE = 'active'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'

    STATUS_CHOICES = (
        (STATUS_DRAFT, 'Draft'),
        (STATUS_ACTIVE, 'Active'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
    )

    # Fields that cannot change once the event is published or has confirmed registrations
    STRUCTURAL_FIELDS = ('start_time', 'end_time', 'max_slots', 'venue')

    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    start_time = models.DateTimeField()
    end_time = models.DateTimeField()
    max_slots = models.PositiveIntegerField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_DRAFT)
    is_published = models.BooleanField(default=False)
    venue = models.ForeignKey(Venue, on_delete=models.PROTECT, related_name='events')
    registration_fee = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-start_time']

    def clean(self):
        if self.start_time and self.end_time and self.start_time >= self.end_time:
            raise ValidationError({'end_time': 'End time must be after start time'})
        if self.venue_id and self.max_slots is not None and self.max_slots > self.venue.capacity:
            raise ValidationError({
                'max_slots': f"Max slots ({self.max_slots}) cannot exceed venue capacity ({self.venue.capacity})"
            })

    def save(self, *args, **kwargs):
        self.clean()
        super().save(*args, **kwargs)

    def __str__(self):
        return self.name

    @property
    def confirmed_count(self):
        return self.registrations.filter(status=RegistrationStatus.CONFIRMED).count()

    @property
    def waitlisted_count(self):
        return self.registrations.filter(status=RegistrationStatus.WAITLISTED).count()

    @property
    def is_open_for_registration(self):
        return self.is_published and self.status not in (self.STATUS_CANCELLED, self.STATUS_COMPLETED)


class Registration(models.Model):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='registrations')
    event = models.ForeignKey(Event, on_delete=models.PROTECT, related_name='registrations')
    registered_at = models.DateTimeField(auto_now_add=True)
    status = models.CharField(max_length=20, choices=RegistrationStatus.choices, default=RegistrationStatus.PENDING)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['registered_at', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['user', 'event'],
                condition=~Q(status='CANCELLED'),
                name='unique_active_registration',
            ),
        ]
        indexes = [
            models.Index(fields=['event', 'status'], name='registration_event_status_idx'),
            models.Index(fields=['user', 'status'], name='registration_user_status_idx'),
        ]

    def __str__(self):
        return f"{self.user.username} - {self.event.name} ({self.status})"


class RegistrationActivity(models.Model):
    ACTION_CHOICES = (
        ('registered', 'Registered'),
        ('waitlisted', 'Joined Waitlist'),
        ('cancelled', 'Cancelled'),
        ('promoted', 'Promoted from Waitlist'),
        ('status_changed', 'Status Changed'),
    )

    registration = models.ForeignKey(Registration, on_delete=models.CASCADE, related_name='activities')
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='registration_actions'
    )
    action = models.CharField(max_length=20, choices=ACTION_CHOICES)
    from_status = models.CharField(max_length=20, choices=RegistrationStatus.choices, blank=True)
    to_status = models.CharField(max_length=20, choices=RegistrationStatus.choices)
    reason = models.TextField(blank=True)
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-timestamp', '-id']
        verbose_name_plural = 'Registration activities'

    def __str__(self):
        return f"{self.registration_id} - {self.action} - {self.to_status}"

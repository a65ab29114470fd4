from django.contrib.auth import get_user_model
from django.db.models.signals import post_save
from django.dispatch import receiver

from .models import StudentProfile

User = get_user_model()


@receiver(post_save, sender=User)
def ensure_student_profile(sender, instance, created, **kwargs):
    """
    Guarantee that every user has a related profile, including accounts made
    with createsuperuser or through the admin site.
    """
    if created:
        StudentProfile.objects.get_or_create(user=instance)
    else:
        try:
            instance.profile
        except StudentProfile.DoesNotExist:
            StudentProfile.objects.create(user=instance)

from django.contrib.auth.models import User
from django.db.models.signals import post_save
from django.dispatch import receiver

from .models import Profile
from .session import avatar_url_for


@receiver(post_save, sender=User)
def create_profile(sender, instance, created, **kwargs):
    if not created:
        return
    Profile.objects.get_or_create(
        user=instance,
        defaults={
            "avatar_url": avatar_url_for(instance.username),
            "is_admin": instance.is_superuser,
        },
    )

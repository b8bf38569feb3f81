"""
Cache invalidation signals
Item edits through the ORM drop cached listings; ledger updates bypass
model signals, so the services that call the ledger invalidate explicitly.
"""
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
from backoffice.core.cache_utils import invalidate_items_cache
from .models import Item


@receiver(post_save, sender=Item)
@receiver(post_delete, sender=Item)
def invalidate_item_listings(sender, instance, **kwargs):
    invalidate_items_cache()

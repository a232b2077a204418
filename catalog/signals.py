"""
Catalog — Signals

Audit logging for Product create / update. Status changes are logged by
ProductService itself and set _skip_audit on the instance.

@file catalog/signals.py
"""

import logging

from django.db.models.signals import post_save, pre_save
from django.dispatch import receiver

from core.constants import AUDIT_ACTION_CREATE, AUDIT_ACTION_UPDATE
from core.services import AuditService

from .models import Product

logger = logging.getLogger('quittrace')

_product_pre: dict = {}


@receiver(pre_save, sender=Product)
def product_pre_save(sender, instance, **kwargs):
    if instance.pk and not instance._state.adding:
        try:
            old = Product.objects.get(pk=instance.pk)
            _product_pre[str(instance.pk)] = AuditService.snapshot(old)
        except Product.DoesNotExist:
            pass


@receiver(post_save, sender=Product)
def product_post_save(sender, instance, created, **kwargs):
    old = _product_pre.pop(str(instance.pk), None)
    if getattr(instance, '_skip_audit', False):
        return
    new = AuditService.snapshot(instance)
    if not created and old == new:
        return
    AuditService.log(
        actor=getattr(instance, '_current_user', None),
        action=AUDIT_ACTION_CREATE if created else AUDIT_ACTION_UPDATE,
        model_name='Product',
        object_id=str(instance.pk),
        old_values=old,
        new_values=new,
    )

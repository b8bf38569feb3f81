from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """Back-office staff account (admins and inventory operators)"""
    phone = models.CharField(max_length=20, blank=True, null=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'users'


class AuditLog(models.Model):
    """Audit log for stock movements and order lifecycle events"""
    ACTION_CHOICES = [
        ('create', 'Create'),
        ('update', 'Update'),
        ('delete', 'Delete'),
        ('order_place', 'Order Placed'),
        ('order_cancel', 'Order Cancelled'),
        ('stock_adjust', 'Stock Adjustment'),
    ]

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='audit_logs')
    action = models.CharField(max_length=50, choices=ACTION_CHOICES)
    model_name = models.CharField(max_length=100)
    object_id = models.CharField(max_length=100)
    object_name = models.CharField(max_length=255, blank=True, null=True, help_text="Human-readable name of the object (e.g., item name, order number)")
    object_reference = models.CharField(max_length=255, blank=True, null=True, help_text="Reference identifier (e.g., order number, external order id)")
    changes = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'audit_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['-created_at'], name='audit_logs_created_9c1f2e_idx'),
            models.Index(fields=['action'], name='audit_logs_action_4b7d1a_idx'),
            models.Index(fields=['model_name'], name='audit_logs_model_n_8e2c5b_idx'),
            models.Index(fields=['object_reference'], name='audit_logs_object__3a6f0d_idx'),
        ]

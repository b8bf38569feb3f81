"""
URL configuration for the back-office project.

All API routes live under /api/v1/; each app contributes its own urls module.
"""
from django.contrib import admin
from django.urls import path, include

admin.site.site_header = "Back Office Admin Panel"
admin.site.site_title = "Back Office Admin Portal"
admin.site.index_title = "Inventory & Orders"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('backoffice.core.urls')),
    path('api/v1/', include('backoffice.inventory.urls')),
    path('api/v1/', include('backoffice.parties.urls')),
    path('api/v1/', include('backoffice.orders.urls')),
]

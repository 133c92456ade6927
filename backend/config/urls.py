"""
URL configuration for backend project.

Every app mounts its routes under /api/v1/.
"""
from django.contrib import admin
from django.urls import path, include

admin.site.site_header = "Mato Admin Panel"
admin.site.site_title = "Mato Admin Portal"
admin.site.index_title = "Welcome to Mato Online Admin"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('backend.core.urls')),
    path('api/v1/', include('backend.catalog.urls')),
    path('api/v1/', include('backend.inventory.urls')),
    path('api/v1/', include('backend.parties.urls')),
    path('api/v1/', include('backend.pos.urls')),
    path('api/v1/', include('backend.expenses.urls')),
    path('api/v1/', include('backend.reports.urls')),
]

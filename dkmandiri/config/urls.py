"""
URL configuration for the DK Mandiri backend.

Every app exposes its endpoints under /api/v1/.
"""
from django.contrib import admin
from django.urls import path, include, re_path
from django.conf import settings
from django.views.static import serve

admin.site.site_header = "DK Mandiri Admin Panel"
admin.site.site_title = "DK Mandiri Admin Portal"
admin.site.index_title = "Welcome to DK Mandiri Admin Portal"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('dkmandiri.core.urls')),
    path('api/v1/', include('dkmandiri.catalog.urls')),
    path('api/v1/', include('dkmandiri.parties.urls')),
    path('api/v1/', include('dkmandiri.orders.urls')),
    path('api/v1/', include('dkmandiri.pos.urls')),
    path('api/v1/', include('dkmandiri.reports.urls')),
    path('api/v1/', include('dkmandiri.community.urls')),
    path('api/v1/', include('dkmandiri.assistant.urls')),
    re_path(r'^media/(?P<path>.*)$', serve, {'document_root': settings.MEDIA_ROOT}),
]

from django.urls import path
from .views import (
    CustomTokenRefreshView, register, login, profile, change_password,
    user_list_create, user_detail, user_reset_password,
    audit_log_list,
)

urlpatterns = [
    # Auth endpoints
    path('auth/register/', register, name='register'),
    path('auth/login/', login, name='login'),
    path('auth/refresh/', CustomTokenRefreshView.as_view(), name='token_refresh'),
    path('auth/profile/', profile, name='auth-profile'),

    # Profile endpoints
    path('profile/', profile, name='profile'),
    path('profile/change-password/', change_password, name='profile-change-password'),

    # User endpoints
    path('users/', user_list_create, name='user-list-create'),
    path('users/<int:pk>/', user_detail, name='user-detail'),
    path('users/<int:pk>/reset-password/', user_reset_password, name='user-reset-password'),

    # AuditLog endpoints
    path('audit-logs/', audit_log_list, name='audit-log-list'),
]

from django.urls import path
from . import views

app_name = 'accounts'

urlpatterns = [
    path('auth/csrf/', views.csrf, name='csrf'),
    path('auth/register/', views.register, name='register'),
    path('auth/login/', views.login_view, name='login'),
    path('auth/logout/', views.logout_view, name='logout'),
    path('auth/me/', views.me, name='me'),
    path('auth/change-password/', views.change_password, name='change_password'),

    # Admin management
    path('admin/users/', views.admin_users, name='admin_users'),
    path('admin/users/<int:pk>/', views.admin_user_detail, name='admin_user_detail'),
    path('admin/teachers/', views.admin_teachers, name='admin_teachers'),
]

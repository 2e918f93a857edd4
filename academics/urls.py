from django.urls import path
from . import views

app_name = 'academics'

urlpatterns = [
    path('subjects/', views.subject_list, name='subject_list'),
    path('subjects/<int:pk>/', views.subject_detail, name='subject_detail'),

    # Admin management
    path('admin/subjects/', views.admin_subjects, name='admin_subjects'),
    path('admin/subjects/<int:pk>/', views.admin_subject_detail, name='admin_subject_detail'),
]

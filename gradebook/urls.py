from django.urls import path
from . import views

app_name = 'gradebook'

urlpatterns = [
    # Tests
    path('tests/', views.test_list, name='test_list'),
    path('tests/<int:pk>/', views.test_detail, name='test_detail'),

    # Marks and results
    path('tests/<int:pk>/marks/', views.submit_test_marks, name='submit_marks'),
    path('tests/<int:pk>/marks/import/', views.import_test_marks, name='import_marks'),
    path('tests/<int:pk>/results/', views.test_results, name='test_results'),
    path('tests/<int:pk>/results/export/', views.export_test_results, name='export_results'),

    # Dashboards
    path('dashboard/', views.dashboard_home, name='dashboard'),
    path('dashboard/student/<int:pk>/', views.student_dashboard, name='student_dashboard'),
    path('dashboard/teacher/<int:pk>/', views.teacher_dashboard, name='teacher_dashboard'),
    path('dashboard/class/', views.class_dashboard, name='class_dashboard'),
    path('dashboard/admin/', views.admin_dashboard, name='admin_dashboard'),
    path('admin/dashboard/', views.admin_dashboard, name='admin_dashboard_alias'),
]

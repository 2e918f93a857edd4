from django.urls import path
from . import views

app_name = 'students'

urlpatterns = [
    path('', views.student_list, name='student_list'),
    path('me/results/', views.my_results, name='my_results'),
    path('<int:pk>/', views.student_detail, name='student_detail'),
    path('<int:pk>/performance/', views.student_performance, name='student_performance'),
]

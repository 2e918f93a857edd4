from django.contrib import admin
from django.http import JsonResponse
from django.urls import path, include


def health_check(request):
    """Health check endpoint for load balancers and monitoring."""
    return JsonResponse({'status': 'healthy'})


urlpatterns = [
    path('health/', health_check, name='health_check'),
    path('django-admin/', admin.site.urls),

    path('api/', include('accounts.urls')),
    path('api/', include('academics.urls')),
    path('api/', include('gradebook.urls')),
    path('api/students/', include('students.urls')),
]

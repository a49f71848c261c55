"""
StackIt URL Configuration
"""
from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.urls import path, include
from django.http import JsonResponse


def api_root(request):
    """Root endpoint with API information."""
    return JsonResponse({
        'message': 'StackIt API Server',
        'version': '1.0',
        'endpoints': {
            'auth': '/api/auth/',
            'questions': '/api/questions/',
            'answers': '/api/answers/<id>/',
            'votes': '/api/votes/',
            'notifications': '/api/notifications/',
            'posts': '/api/posts/',
            'ai': '/api/ai/chat/',
            'admin': '/api/admin/',
        },
        'uploads': settings.MEDIA_URL,
        'admin': '/admin/',
    })


urlpatterns = [
    path('', api_root, name='api-root'),
    path('admin/', admin.site.urls),
    path('api/', include('forum.urls')),
]

# Uploaded media; production serves MEDIA_ROOT from the web server
urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)

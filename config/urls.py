"""
URL configuration for the AlgoAnswerHub project.
"""
from django.urls import path, include

from answerhub.admin import admin_site

urlpatterns = [
    path('admin/', admin_site.urls),
    path('', include('answerhub.urls')),
]

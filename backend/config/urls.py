from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/towns/', include('towns.urls')),
    path('api/recommendations/', include('recommendations.urls')),
]

from django.urls import path, include

urlpatterns = [
    path('', include('micropub.urls')),
]

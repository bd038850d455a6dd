from django.urls import path

from .views import MicropubInspectView

urlpatterns = [
    path("micropub/inspect", MicropubInspectView.as_view(), name="micropub-inspect"),
]

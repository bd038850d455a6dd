import logging

from django.http import JsonResponse
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from .request import MicropubRequest
from .request_logs import log_request_error

logger = logging.getLogger(__name__)


@method_decorator(csrf_exempt, name="dispatch")
class MicropubInspectView(View):
    """Echoes the normalized form of a Micropub request.

    Useful for checking what a client sends; nothing is published.
    """

    http_method_names = ["get", "post"]

    def dispatch(self, request, *args, **kwargs):
        micropub = MicropubRequest(request)
        if micropub.error:
            log_request_error(request, micropub.error)
            return micropub.error.to_response(request)
        request.micropub = micropub
        return super().dispatch(request, *args, **kwargs)

    def get(self, request):
        return JsonResponse(request.micropub.as_dict())

    def post(self, request):
        micropub = request.micropub
        logger.info(
            "Micropub request inspected",
            extra={"micropub_action": micropub.action, "micropub_client": micropub.client},
        )
        return JsonResponse(micropub.as_dict())

"""Gateway middleware: request correlation and request body limits.

``RequestIdMiddleware`` gives every request an identifier, reusing the
client's ``X-Request-ID`` header when present. The id is attached to the
request, stored in ``REQUEST_ID_CTX`` for code that has no request object
(outbound HTTP adapters, log filters) and echoed on the response.

``BodySizeLimitMiddleware`` rejects API requests whose declared body is
larger than ``settings.API_MAX_BYTES`` before any view parses it.
"""

import uuid
import contextvars

from django.conf import settings
from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")


class RequestIdMiddleware(MiddlewareMixin):
    HEADER = "HTTP_X_REQUEST_ID"       # incoming header as found in request.META
    RESPONSE_HEADER = "X-Request-ID"

    def process_request(self, request):
        rid = request.META.get(self.HEADER) or str(uuid.uuid4())
        request.request_id = rid
        request._request_id_token = REQUEST_ID_CTX.set(rid)

    def process_response(self, request, response):
        response[self.RESPONSE_HEADER] = getattr(request, "request_id", REQUEST_ID_CTX.get())
        token = getattr(request, "_request_id_token", None)
        if token is not None:
            # gthread workers reuse threads; do not leak the id to the next request
            REQUEST_ID_CTX.reset(token)
            request._request_id_token = None
        return response


class BodySizeLimitMiddleware(MiddlewareMixin):
    PREFIX = "/api/"

    def process_request(self, request):
        if not request.path.startswith(self.PREFIX):
            return None
        limit = getattr(settings, "API_MAX_BYTES", 1024 * 1024)
        clen = request.META.get("CONTENT_LENGTH")
        if clen and clen.isdigit() and int(clen) > limit:
            return JsonResponse({"detail": "PAYLOAD_TOO_LARGE", "status": 413}, status=413)
        return None

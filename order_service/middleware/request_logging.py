import logging
import uuid

from fastapi import Request

from order_service.core.log_config import request_id_var

REQUEST_ID_HEADER = "X-Request-ID"

logger = logging.getLogger(__name__)


def add_request_logging(app):
    @app.middleware("http")
    async def request_logging_mw(request: Request, call_next):
        # prefer an id handed to us by a gateway
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        token = request_id_var.set(request_id)
        try:
            logger.info("incoming-request method=%s path=%s request_id=%s",
                        request.method, request.url.path, request_id)
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            request_id_var.reset(token)

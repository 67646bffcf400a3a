from typing import List

from fastapi.middleware.cors import CORSMiddleware

from order_service.config import settings
from order_service.middleware.request_logging import REQUEST_ID_HEADER

# the order API is read with GET and changed with POST/PUT/PATCH; orders are never deleted
ORDER_API_METHODS = ["GET", "POST", "PUT", "PATCH", "OPTIONS"]


def allowed_origins(raw: str) -> List[str]:
    return [o.strip() for o in (raw or "").split(",") if o.strip()]


def configure_cors(app, origins: str = None):
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins(settings.CORS_ORIGINS if origins is None else origins),
        allow_credentials=True,
        allow_methods=ORDER_API_METHODS,
        allow_headers=["Content-Type", REQUEST_ID_HEADER],
        # lets browser clients quote the id when reporting a failed order call
        expose_headers=[REQUEST_ID_HEADER],
        max_age=86400,
    )

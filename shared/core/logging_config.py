"""
Structured logging configuration
JSON log lines with request and webhook trace context, suitable for
log aggregation (ELK, CloudWatch Insights, Datadog).
"""

import logging
import logging.handlers
import os
import re
import sys
import json
import time
import traceback
from datetime import datetime
from typing import Any, Dict, Optional
from contextvars import ContextVar
import uuid
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

# Context variables for request tracking
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
webhook_id_var: ContextVar[Optional[str]] = ContextVar('webhook_id', default=None)
shop_domain_var: ContextVar[Optional[str]] = ContextVar('shop_domain', default=None)

class StructuredFormatter(logging.Formatter):
    """JSON structured logging formatter"""

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "@timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": os.getenv('SERVICE_NAME', 'stock-sync'),
            "environment": os.getenv('ENVIRONMENT', 'development'),
            "version": os.getenv('SERVICE_VERSION', '1.0.0'),
        }

        trace_context = get_trace_context()
        if trace_context:
            log_obj["trace"] = trace_context

        log_obj["location"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
            "module": record.module
        }

        if record.exc_info:
            log_obj["error"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "stacktrace": traceback.format_exception(*record.exc_info)
            }

        # Domain fields passed via extra={'extra_fields': {...}}
        if hasattr(record, 'extra_fields'):
            log_obj["custom"] = record.extra_fields

        if hasattr(record, 'duration_ms'):
            log_obj["performance"] = {
                "duration_ms": record.duration_ms
            }

        return json.dumps(log_obj, default=str)

class SecurityFilter(logging.Filter):
    """Redacts Shopify access tokens and other credentials from log messages"""

    PATTERNS = [
        re.compile(r"shp(at|ss|ca|pa)_[0-9a-fA-F]+"),
        re.compile(r"(?i)(x-shopify-access-token|access_token|api_key|secret|password)([\"']?\s*[:=]\s*[\"']?)[^\s,\"'}]+"),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = self.PATTERNS[0].sub("shp***REDACTED***", message)
        redacted = self.PATTERNS[1].sub(r"\1\2***REDACTED***", redacted)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True

def setup_logging(
    service_name: str,
    level: str = "INFO",
    enable_console: bool = True,
    log_file: Optional[str] = None
) -> None:
    """
    Setup structured logging for the service

    Args:
        service_name: Name reported in every log line
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        enable_console: Enable stdout output
        log_file: Optional path of a rotating log file
    """
    os.environ['SERVICE_NAME'] = service_name

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers = []

    formatter = StructuredFormatter()

    if enable_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        console_handler.addFilter(SecurityFilter())
        root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10485760,  # 10MB
            backupCount=5
        )
        file_handler.setFormatter(formatter)
        file_handler.addFilter(SecurityFilter())
        root_logger.addHandler(file_handler)

    # Per-request httpx logging would repeat every platform call
    logging.getLogger('uvicorn').setLevel(logging.WARNING)
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)

    root_logger.info(
        "Logging initialized",
        extra={
            'extra_fields': {
                'service': service_name,
                'level': level,
                'handlers': {
                    'console': enable_console,
                    'file': bool(log_file)
                }
            }
        }
    )

def get_trace_context() -> Optional[Dict[str, Any]]:
    """Current request / webhook identifiers, or None outside a request"""
    context = {
        "request_id": request_id_var.get(),
        "webhook_id": webhook_id_var.get(),
        "shop_domain": shop_domain_var.get(),
    }
    context = {k: v for k, v in context.items() if v}
    return context or None

class LoggerAdapter(logging.LoggerAdapter):
    """Injects the trace context into the record's extra fields"""

    def process(self, msg, kwargs):
        extra = kwargs.get('extra', {})
        trace = get_trace_context()
        if trace:
            extra.update(trace)
        kwargs['extra'] = extra
        return msg, kwargs

def get_logger(name: str) -> LoggerAdapter:
    """
    Get a logger instance with request context support

    Args:
        name: Logger name (usually __name__)
    """
    return LoggerAdapter(logging.getLogger(name), {})

def set_request_context(
    request_id: Optional[str] = None,
    webhook_id: Optional[str] = None,
    shop_domain: Optional[str] = None
) -> None:
    if request_id:
        request_id_var.set(request_id)
    if webhook_id:
        webhook_id_var.set(webhook_id)
    if shop_domain:
        shop_domain_var.set(shop_domain)

def generate_request_id() -> str:
    return str(uuid.uuid4())

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs every request and response, tags the context with the request id
    and, for Shopify deliveries, the webhook id and shop domain
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get('X-Request-ID') or generate_request_id()
        set_request_context(
            request_id=request_id,
            webhook_id=request.headers.get('X-Shopify-Webhook-Id'),
            shop_domain=request.headers.get('X-Shopify-Shop-Domain')
        )

        logger = get_logger(__name__)
        logger.info(
            f"Request started: {request.method} {request.url.path}",
            extra={
                'extra_fields': {
                    'method': request.method,
                    'path': request.url.path,
                    'topic': request.headers.get('X-Shopify-Topic'),
                    'client_host': request.client.host if request.client else None
                }
            }
        )

        start_time = time.time()
        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                f"Request failed: {request.method} {request.url.path}",
                exc_info=True,
                extra={
                    'extra_fields': {
                        'method': request.method,
                        'path': request.url.path,
                        'duration_ms': (time.time() - start_time) * 1000
                    }
                }
            )
            raise

        logger.info(
            f"Request completed: {request.method} {request.url.path}",
            extra={
                'extra_fields': {
                    'method': request.method,
                    'path': request.url.path,
                    'status_code': response.status_code,
                    'duration_ms': (time.time() - start_time) * 1000
                }
            }
        )
        response.headers['X-Request-ID'] = request_id
        return response

"""HTTP API for the textbook reader frontend.

Every route is served at the root and again under ``/api``.
"""

import functools
import time
import uuid
from typing import Any, Callable, Dict, Optional, Tuple

from flask import Blueprint, Flask, Response, current_app, g, jsonify, request
from werkzeug.exceptions import RequestEntityTooLarge

from .audit import AuditEventType, get_audit_logger
from .constants import API_URL_PREFIX
from .exceptions import InvalidInputError, TextbookOCRError
from .logging import bind_request_context, clear_request_context
from .model_client import GenerativeModelClient
from .settings import Settings, get_settings
from .transformations import TransformationService
from .utils.file_operations import FileTypeUtils
from .validation import check_image_payload

SERVICE_EXTENSION_KEY = "textbook_ocr"
"""Key of the per-app state stored in ``app.extensions``."""

api = Blueprint("textbook_ocr", __name__)
audit_logger = get_audit_logger("server")


class ServiceProvider:
    """Builds the transformation service on first use.

    The API key is resolved lazily so the server starts without one and
    reports the missing key on the first request that needs the model.
    """

    def __init__(self, settings: Settings, service: Optional[TransformationService] = None):
        self.settings = settings
        self._service = service

    def get(self) -> TransformationService:
        if self._service is None:
            client = GenerativeModelClient(self.settings.get_model_config())
            self._service = TransformationService(client)
        return self._service


def _service() -> TransformationService:
    return current_app.extensions[SERVICE_EXTENSION_KEY].get()


def _json_body() -> Dict[str, Any]:
    # Bodies that are not a JSON object count as empty input
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _optional_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def handles_failures(error_message: str) -> Callable:
    """Map service exceptions raised by a view to JSON error responses.

    Args:
        error_message: Operation-specific message returned with HTTP 500
    """
    def decorator(view: Callable) -> Callable:
        @functools.wraps(view)
        def wrapper(*args, **kwargs):
            try:
                return view(*args, **kwargs)
            except InvalidInputError as e:
                return jsonify({"error": e.message}), 400
            except TextbookOCRError as e:
                audit_logger.error(
                    error_message,
                    endpoint=request.path,
                    error_type=type(e).__name__,
                    error_message=e.message,
                    details=e.details,
                )
                return jsonify({"error": error_message, "details": e.details or e.message}), 500
        return wrapper
    return decorator


@api.route("/ocr", methods=["POST"])
@handles_failures("Failed to process image")
def ocr() -> Response:
    upload = request.files.get("image")
    if upload is None:
        raise InvalidInputError("No image file provided")

    image = upload.read()
    mime_type = FileTypeUtils.resolve_upload_mime_type(upload.mimetype, upload.filename, image)
    # Bad input is rejected before the model client is built
    check_image_payload(image, mime_type)
    result = _service().extract_page(
        image,
        mime_type,
        highlighted_text=request.form.get("highlightedText"),
        full_text=request.form.get("fullText"),
    )
    return jsonify(result.to_response())


def _selection_args() -> Dict[str, Optional[str]]:
    """Selection and context from the JSON body.

    Raises:
        InvalidInputError: If neither text nor highlightedText has content
    """
    body = _json_body()
    selected = TransformationService.resolve_selection(
        _optional_str(body.get("text")), _optional_str(body.get("highlightedText"))
    )
    return {"text": selected, "full_text": _optional_str(body.get("fullText"))}


@api.route("/simplify", methods=["POST"])
@handles_failures("Failed to simplify text")
def simplify() -> Response:
    args = _selection_args()
    return jsonify({"simplified": _service().simplify(**args)})


@api.route("/explain", methods=["POST"])
@handles_failures("Failed to explain text")
def explain() -> Response:
    args = _selection_args()
    return jsonify({"explanation": _service().explain(**args)})


@api.route("/knowledge-tree", methods=["POST"])
@handles_failures("Failed to generate knowledge tree")
def knowledge_tree() -> Response:
    args = _selection_args()
    return jsonify({"knowledgeTree": _service().build_knowledge_tree(**args)})


@api.route("/health", methods=["GET"])
def health() -> Response:
    return jsonify({"status": "ok"})


@api.route("/test-text", methods=["GET"])
def test_text() -> Tuple[Response, int]:
    try:
        return jsonify({"output": _service().check_text_model()}), 200
    except TextbookOCRError as e:
        return jsonify({"error": e.details or e.message}), 500


def _register_cors(app: Flask, origin: str) -> None:
    @app.after_request
    def add_cors_headers(response: Response) -> Response:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization"
        return response


def _register_request_audit(app: Flask) -> None:
    @app.before_request
    def start_request() -> None:
        g.request_started = time.time()
        bind_request_context(request_id=uuid.uuid4().hex[:12], path=request.path)

    @app.after_request
    def audit_request(response: Response) -> Response:
        started = g.get("request_started")
        audit_logger.audit(
            AuditEventType.HTTP_REQUEST,
            f"{request.method} {request.path}",
            level="debug" if request.method == "OPTIONS" else "info",
            operation=request.endpoint,
            outcome="success" if response.status_code < 400 else "failure",
            status_code=response.status_code,
            duration_seconds=round(time.time() - started, 3) if started else None,
        )
        return response

    @app.teardown_request
    def end_request(error: Optional[BaseException]) -> None:
        clear_request_context()


def create_app(
    settings: Optional[Settings] = None,
    service: Optional[TransformationService] = None,
) -> Flask:
    """Create the Flask application.

    Args:
        settings: Settings to read server and model configuration from
        service: Pre-built service; built from ``settings`` on first use when None

    Returns:
        Configured Flask application
    """
    settings = settings or get_settings()
    server_config = settings.get_server_config()

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = server_config.max_content_length
    app.extensions[SERVICE_EXTENSION_KEY] = ServiceProvider(settings, service)

    app.register_blueprint(api)
    app.register_blueprint(api, url_prefix=API_URL_PREFIX, name="textbook_ocr_api")

    @app.errorhandler(RequestEntityTooLarge)
    def too_large(error: RequestEntityTooLarge) -> Tuple[Response, int]:
        return (
            jsonify({"error": f"Upload exceeds the {server_config.max_upload_mb} MB limit"}),
            413,
        )

    _register_cors(app, server_config.cors_origin)
    _register_request_audit(app)
    return app


def run_server(
    settings: Optional[Settings] = None,
    host: Optional[str] = None,
    port: Optional[int] = None,
    debug: bool = False,
) -> None:
    """Serve the API with the Flask development server."""
    settings = settings or get_settings()
    server_config = settings.get_server_config()
    app = create_app(settings)
    bind_host = host or server_config.host
    bind_port = port or server_config.port

    audit_logger.audit(
        AuditEventType.APPLICATION_START,
        f"Serving on http://{bind_host}:{bind_port}",
        operation="serve",
        host=bind_host,
        port=bind_port,
    )
    app.run(host=bind_host, port=bind_port, debug=debug)

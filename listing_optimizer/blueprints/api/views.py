"""JSON API for submitting and tracking optimization jobs."""
import io
import logging

from flask import jsonify, request, send_file

from listing_optimizer.blueprints.api import api_bp
from listing_optimizer.errors import NotFoundError, OptimizerError, ValidationError
from listing_optimizer.extensions import get_orchestrator

logger = logging.getLogger(__name__)


@api_bp.errorhandler(OptimizerError)
def handle_optimizer_error(error):
    if isinstance(error, ValidationError):
        status = 400
    elif isinstance(error, NotFoundError):
        status = 404
    else:
        logger.error("Unhandled engine error: %s", error)
        status = 500
    return jsonify(error.to_dict()), status


@api_bp.route("/optimize", methods=["POST"])
def optimize():
    payload = request.get_json(silent=True)
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    url = payload.get("url")
    if not isinstance(url, str) or not url.strip():
        raise ValidationError("A listing url is required")

    job_id = get_orchestrator().submit_job(url, max_images=payload.get("max_images"))
    return jsonify({"job_id": job_id}), 202


@api_bp.route("/job/<job_id>")
def job_status(job_id):
    snapshot = get_orchestrator().get_job_snapshot(job_id)
    return jsonify(snapshot.to_dict())


@api_bp.route("/job/<job_id>/cancel", methods=["POST"])
def cancel_job(job_id):
    cancelled = get_orchestrator().cancel_job(job_id)
    return jsonify({"cancelled": cancelled})


@api_bp.route("/download/<job_id>/<image_id>")
def download(job_id, image_id):
    """Serve an optimized image as a JPEG attachment."""
    image = get_orchestrator().get_optimized_image(job_id, image_id)
    return send_file(
        io.BytesIO(image.optimized_content),
        mimetype="image/jpeg",
        as_attachment=True,
        download_name=image.file_name,
    )

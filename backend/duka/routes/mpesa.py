# Overview: Flask API routes for M-Pesa STK push and its callback.

from flask import Blueprint, current_app, jsonify, request

from ..errors import CommerceError
from ..services import mpesa_service
from ..validation import ValidationError


mpesa_bp = Blueprint("mpesa", __name__, url_prefix="/api/mpesa")


@mpesa_bp.post("/stk-push")
def stk_push_route():
    """
    Start an M-Pesa payment prompt on the customer's phone.

    Request body: {"phone": "0712345678", "amount": "150.00"}
    Returns the gateway acknowledgement; the result arrives on /callback.
    """
    data = request.get_json(silent=True) or {}
    try:
        ack = mpesa_service.initiate_stk_push(data.get("phone"), data.get("amount"))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except CommerceError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to start STK push")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(ack), 200


@mpesa_bp.post("/callback")
def callback_route():
    """Safaricom result callback. Stored verbatim; never touches sales or stock."""
    body = request.get_json(silent=True)
    current_app.logger.info("Received M-Pesa callback")
    try:
        callback = mpesa_service.record_callback(body or {})
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to record M-Pesa callback")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"message": "Success", "callback": callback.to_dict()}), 200


@mpesa_bp.get("/callbacks")
def list_callbacks_route():
    callbacks = mpesa_service.list_callbacks(
        checkout_request_id=request.args.get("checkout_request_id"),
        limit=min(max(request.args.get("limit", 50, type=int), 1), 500),
    )
    return jsonify({"items": [c.to_dict() for c in callbacks], "count": len(callbacks)})

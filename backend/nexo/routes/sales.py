# Overview: Flask API routes for sales; parses input and returns JSON responses.

# backend/nexo/routes/sales.py
"""Sale aggregate routes: create, list, read, update, status changes, delete."""

from flask import Blueprint, request, jsonify
from flask import current_app

from ..services import sales_service
from ..services import sale_lines_service
from ..services.sales_service import SaleError


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _error(e: SaleError):
    return jsonify(e.to_dict()), e.http_status


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise sales_service.SaleValidationError(
            "Invalid JSON payload", details=["Body must be a JSON object"]
        )
    return data


@sales_bp.post("")
def create_sale_route():
    """
    Create a sale with its lines.

    Body: customer_id, user_id, lines=[{product_id, quantity, unit_price?}],
    occurred_at?, status? (default Pending), total?, notes?
    """
    try:
        data = _json_body()
        sale = sales_service.create_sale(
            customer_id=data.get("customer_id"),
            user_id=data.get("user_id"),
            lines=data.get("lines"),
            occurred_at=data.get("occurred_at"),
            status=data.get("status"),
            total=data.get("total"),
            notes=data.get("notes"),
        )
        return jsonify({"sale": sale.to_dict()}), 201

    except SaleError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
def list_sales_route():
    """
    List sales, newest first.

    Query params: customer_id, user_id, status, date_from, date_to, page, limit
    """
    args = request.args
    try:
        result = sales_service.list_sales(
            customer_id=args.get("customer_id"),
            user_id=args.get("user_id"),
            status=args.get("status"),
            date_from=args.get("date_from"),
            date_to=args.get("date_to"),
            page=args.get("page"),
            limit=args.get("limit"),
        )
        return jsonify(result), 200

    except SaleError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify({"sale": sale.to_dict()}), 200

    except SaleError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to get sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.route("/<int:sale_id>", methods=["PUT", "PATCH"])
def update_sale_route(sale_id: int):
    """Partial update of occurred_at, notes and status; status changes move stock."""
    try:
        data = _json_body()
        sales_service.update_sale(sale_id, data)
        sale = sales_service.get_sale(sale_id)
        return jsonify({"sale": sale.to_dict()}), 200

    except SaleError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to update sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.patch("/<int:sale_id>/status")
def update_status_route(sale_id: int):
    """Body: {"status": "Pending" | "Completed" | "Cancelled"}"""
    try:
        data = _json_body()
        if "status" not in data:
            raise sales_service.SaleValidationError(
                "status required", details=["Send {\"status\": ...}"]
            )

        sales_service.update_status(sale_id, data["status"])
        sale = sales_service.get_sale(sale_id)
        return jsonify({"sale": sale.to_dict()}), 200

    except SaleError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to update sale status")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.delete("/<int:sale_id>")
def delete_sale_route(sale_id: int):
    """Delete a sale and its lines; a Completed sale gives its stock back."""
    try:
        sales_service.delete_sale(sale_id)
        return jsonify({"ok": True, "id": sale_id}), 200

    except SaleError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to delete sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>/lines")
def sale_lines_route(sale_id: int):
    try:
        return jsonify(sale_lines_service.lines_for_sale(sale_id)), 200

    except SaleError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to list sale lines")
        return jsonify({"error": "Internal server error"}), 500

# Overview: Flask API routes for sale lines; every mutation answers with the new sale total.

from flask import Blueprint, request, jsonify
from flask import current_app

from ..services import sale_lines_service
from ..services.sales_service import SaleError, SaleValidationError


sale_lines_bp = Blueprint("sale_lines", __name__, url_prefix="/api/sale-lines")


def _error(e: SaleError):
    return jsonify(e.to_dict()), e.http_status


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise SaleValidationError("Invalid JSON payload", details=["Body must be a JSON object"])
    return data


@sale_lines_bp.post("")
def add_line_route():
    """Body: sale_id, product_id, quantity, unit_price? (defaults to catalog price)"""
    try:
        data = _json_body()
        missing = [f for f in ("sale_id", "product_id", "quantity") if data.get(f) is None]
        if missing:
            raise SaleValidationError(
                "sale_id, product_id and quantity required",
                details=[f"Missing: {', '.join(missing)}"],
            )

        line = sale_lines_service.add_line(
            data["sale_id"], data["product_id"], data["quantity"], data.get("unit_price"),
        )
        line = sale_lines_service.get_line(line.id)
        return jsonify({"line": line.to_dict(), "sale_total": str(line.sale.total)}), 201

    except SaleError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to add sale line")
        return jsonify({"error": "Internal server error"}), 500


@sale_lines_bp.get("")
def list_lines_route():
    """Query params: sale_id, product_id, page, limit"""
    args = request.args
    try:
        result = sale_lines_service.list_lines(
            sale_id=args.get("sale_id"),
            product_id=args.get("product_id"),
            page=args.get("page"),
            limit=args.get("limit"),
        )
        return jsonify(result), 200

    except SaleError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to list sale lines")
        return jsonify({"error": "Internal server error"}), 500


@sale_lines_bp.get("/<int:line_id>")
def get_line_route(line_id: int):
    try:
        line = sale_lines_service.get_line(line_id)
        return jsonify({"line": line.to_dict(), "sale_total": str(line.sale.total)}), 200

    except SaleError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to get sale line")
        return jsonify({"error": "Internal server error"}), 500


@sale_lines_bp.route("/<int:line_id>", methods=["PUT", "PATCH"])
def update_line_route(line_id: int):
    """Body: any of quantity, unit_price, product_id"""
    try:
        data = _json_body()
        sale_lines_service.update_line(
            line_id,
            quantity=data.get("quantity"),
            unit_price=data.get("unit_price"),
            product_id=data.get("product_id"),
        )
        line = sale_lines_service.get_line(line_id)
        return jsonify({"line": line.to_dict(), "sale_total": str(line.sale.total)}), 200

    except SaleError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to update sale line")
        return jsonify({"error": "Internal server error"}), 500


@sale_lines_bp.delete("/<int:line_id>")
def delete_line_route(line_id: int):
    try:
        sale = sale_lines_service.delete_line(line_id)
        return jsonify({"ok": True, "sale_id": sale.id, "sale_total": str(sale.total)}), 200

    except SaleError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to delete sale line")
        return jsonify({"error": "Internal server error"}), 500

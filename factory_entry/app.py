"""Flask application serving the entry forms and their JSON API."""
from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

import httpx
from flask import (
    Flask,
    flash,
    jsonify,
    redirect,
    render_template,
    request,
    url_for,
)
from werkzeug.datastructures import FileStorage
from werkzeug.exceptions import BadRequest, MethodNotAllowed, RequestEntityTooLarge

from .config import Settings, get_settings
from .forwarding import ForwardingError, SubmissionForwarder
from .schemas import ENTRY_FORMS, SubmissionInvalid, build_submission
from .spreadsheet import ingest_product_list
from .storage import (
    ConfigurationError,
    InventoryItem,
    InventoryStore,
    ProductCatalog,
    SettingsStore,
    filter_inventory,
    inventory_categories,
)


_ALL_CATEGORIES = "All Categories"
_PREVIEW_COUNT = 3


def create_app(
    settings: Settings | None = None,
    *,
    transport: Optional[httpx.BaseTransport] = None,
) -> Flask:
    settings = settings or get_settings()
    app = Flask(__name__)
    app.config["SECRET_KEY"] = settings.secret_key
    app.config["MAX_CONTENT_LENGTH"] = settings.max_upload_bytes
    app.config["APP_SETTINGS"] = settings
    app.logger.setLevel(settings.log_level)

    data_dir = Path(settings.data_dir)
    data_dir.mkdir(parents=True, exist_ok=True)
    settings_store = SettingsStore(data_dir)
    catalog = ProductCatalog(data_dir)
    inventory_store = InventoryStore(data_dir, timezone_name=settings.default_timezone)
    forwarder = SubmissionForwarder(settings_store, transport=transport)

    def _json_error(message: str, status: int = 400, **extra: Any) -> Any:
        payload: Dict[str, Any] = {"message": message}
        payload.update(extra)
        return jsonify(payload), status

    def _is_api_request() -> bool:
        if request.path.startswith("/api/"):
            return True
        best = request.accept_mimetypes.best
        return best == "application/json"

    def _ingest_upload(
        upload: FileStorage, form_type: str, sheet_name: str, column_ref: str
    ) -> List[str]:
        if catalog.resolve_category(form_type) is None:
            raise ValueError("Invalid type")
        try:
            raw_bytes = upload.read()
        finally:
            upload.close()
        products = ingest_product_list(
            raw_bytes,
            filename=upload.filename,
            sheet_name=sheet_name,
            column_ref=column_ref,
        )
        catalog.replace_products(form_type, products)
        app.logger.info(
            "Loaded %d products for %s from %s[%s]",
            len(products),
            form_type,
            sheet_name,
            column_ref,
        )
        return products

    def _today() -> str:
        return datetime.now(ZoneInfo(settings.default_timezone)).date().isoformat()

    @app.errorhandler(MethodNotAllowed)
    def method_not_allowed(error: MethodNotAllowed) -> Any:
        if not _is_api_request():
            return error.get_response()
        response = jsonify({"message": f"Method {request.method} Not Allowed"})
        response.status_code = 405
        response.headers["Allow"] = ", ".join(sorted(error.valid_methods or []))
        return response

    @app.errorhandler(RequestEntityTooLarge)
    def request_too_large(error: RequestEntityTooLarge) -> Any:
        if not _is_api_request():
            return error.get_response()
        return _json_error(
            f"Request body exceeds {settings.max_upload_bytes} bytes", 413
        )

    @app.context_processor
    def inject_globals() -> Dict[str, Any]:
        return {"app_name": settings.app_name, "entry_forms": ENTRY_FORMS}

    # ------------------------------------------------------------------
    # JSON API
    # ------------------------------------------------------------------
    @app.get("/api/settings")
    def get_forwarding_settings() -> Any:
        try:
            return jsonify(settings_store.load())
        except (OSError, ValueError) as exc:
            app.logger.exception("Error reading settings")
            return _json_error("Failed to read settings", 500, error=str(exc))

    @app.post("/api/settings")
    def save_forwarding_settings() -> Any:
        payload = request.get_json(silent=True)
        endpoint = payload.get("endpoint") if isinstance(payload, dict) else None
        if not isinstance(endpoint, str):
            return _json_error("Invalid endpoint format", 400)
        try:
            saved = settings_store.save(endpoint)
        except OSError as exc:
            app.logger.exception("Error saving settings")
            return _json_error("Failed to save settings", 500, error=str(exc))
        return jsonify({"message": "Settings saved successfully", "settings": saved})

    @app.get("/api/products")
    def list_products() -> Any:
        form_type = request.args.get("type")
        if not form_type:
            return _json_error("Missing or invalid type parameter", 400)
        try:
            products = catalog.list_products(form_type)
        except (OSError, ValueError) as exc:
            app.logger.exception("Error reading product list for %s", form_type)
            return _json_error("Error reading product list", 500, error=str(exc))
        return jsonify(products)

    @app.post("/api/admin/update-products")
    def update_products() -> Any:
        upload = request.files.get("file")
        form_type = request.form.get("type", "")
        sheet_name = request.form.get("sheetName", "")
        column_ref = request.form.get("columnRef", "")
        if (
            upload is None
            or upload.filename == ""
            or not form_type
            or not sheet_name
            or not column_ref
        ):
            return _json_error("Missing required fields", 400)
        try:
            products = _ingest_upload(upload, form_type, sheet_name, column_ref)
        except ValueError as exc:
            return _json_error(str(exc), 400)
        except OSError as exc:
            app.logger.exception("Product list upload failed")
            return _json_error("Internal server error", 500, error=str(exc))
        return jsonify(
            {
                "message": "Product list updated successfully",
                "count": len(products),
                "firstFew": products[:_PREVIEW_COUNT],
            }
        )

    @app.get("/api/rm-inventory")
    def get_inventory() -> Any:
        try:
            return jsonify(inventory_store.load())
        except (OSError, ValueError) as exc:
            app.logger.exception("Error reading inventory")
            return _json_error("Failed to read inventory data", 500, error=str(exc))

    @app.post("/api/rm-inventory")
    def replace_inventory() -> Any:
        payload = request.get_json(silent=True)
        if isinstance(payload, dict) and isinstance(payload.get("items"), list):
            items = payload["items"]
        elif isinstance(payload, list):
            items = payload
        else:
            return _json_error("Payload must be an array of inventory items", 400)
        try:
            snapshot = inventory_store.replace(items)
        except OSError as exc:
            app.logger.exception("Error saving inventory")
            return _json_error("Failed to save inventory data", 500, error=str(exc))
        app.logger.info("Inventory snapshot replaced with %d items", len(items))
        return jsonify(
            {
                "message": "Inventory updated successfully",
                "lastUpdated": snapshot["lastUpdated"],
                "itemCount": len(items),
            }
        )

    @app.post("/api/submit-entry")
    def submit_entry() -> Any:
        if not request.is_json:
            return _json_error("Request body must be JSON", 400)
        try:
            payload = request.get_json()
        except BadRequest:
            return _json_error("Request body is not valid JSON", 400)
        try:
            data = forwarder.forward(payload)
        except ConfigurationError as exc:
            return _json_error(str(exc), 400)
        except ForwardingError as exc:
            app.logger.exception("Proxy submission error")
            return _json_error(str(exc), 500)
        except (OSError, ValueError) as exc:
            app.logger.exception("Proxy submission error")
            return _json_error(str(exc) or "Internal Server Error during submission", 500)
        return jsonify({"success": True, "data": data})

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------
    @app.get("/")
    def index() -> str:
        return render_template("index.html")

    def entry_form(form_type: str) -> Any:
        entry = ENTRY_FORMS[form_type]
        rows: List[Dict[str, str]] = [{"productName": "", "quantity": "", "notes": ""}]
        values: Dict[str, str] = {"user": "", "date": _today(), "billNumber": "", "dcNumber": ""}
        status = 200

        if request.method == "POST":
            values.update({key: request.form.get(key, "") for key in values})
            posted_rows = [
                {"productName": name, "quantity": quantity, "notes": notes}
                for name, quantity, notes in zip(
                    request.form.getlist("productName"),
                    request.form.getlist("quantity"),
                    request.form.getlist("notes"),
                )
            ]
            rows = posted_rows or rows
            try:
                submission = build_submission(form_type, request.form)
                forwarder.forward(submission.to_payload())
            except SubmissionInvalid as exc:
                for message in exc.messages:
                    flash(message, "error")
                status = 400
            except ConfigurationError as exc:
                flash(str(exc), "error")
                status = 400
            except (ForwardingError, OSError, ValueError) as exc:
                app.logger.exception("Submitting %s failed", form_type)
                flash(f"Submission failed: {exc}", "error")
                status = 502
            else:
                flash(f"{entry.title} submitted successfully.", "success")
                return redirect(url_for(f"entry_{form_type}"))

        try:
            products = catalog.list_products(form_type)
        except (OSError, ValueError):
            app.logger.exception("Error reading product list for %s", form_type)
            flash("Could not load the product list.", "error")
            products = []

        return (
            render_template(
                "entry_form.html",
                entry=entry,
                products=products,
                users=settings.users,
                rows=rows,
                values=values,
            ),
            status,
        )

    for slug, entry in ENTRY_FORMS.items():
        app.add_url_rule(
            entry.path,
            endpoint=f"entry_{slug}",
            view_func=entry_form,
            methods=["GET", "POST"],
            defaults={"form_type": slug},
        )

    @app.get("/rm-inventory")
    def rm_inventory() -> str:
        try:
            snapshot = inventory_store.load()
        except (OSError, ValueError):
            app.logger.exception("Error reading inventory")
            flash("Failed to load inventory", "error")
            snapshot = {"lastUpdated": None, "items": []}
        items = [InventoryItem.from_record(record) for record in snapshot.get("items") or []]

        selected_category = (request.args.get("category") or "").strip()
        if selected_category == _ALL_CATEGORIES:
            selected_category = ""
        search = (request.args.get("q") or "").strip()
        only_in = request.args.get("in") == "1"
        only_out = request.args.get("out") == "1"
        visible = filter_inventory(
            items,
            category=selected_category or None,
            search=search,
            only_in=only_in,
            only_out=only_out,
        )
        return render_template(
            "rm_inventory.html",
            items=visible,
            total_count=len(items),
            categories=[_ALL_CATEGORIES, *inventory_categories(items)],
            selected_category=selected_category or _ALL_CATEGORIES,
            search=search,
            only_in=only_in,
            only_out=only_out,
            last_updated=snapshot.get("lastUpdated"),
        )

    @app.get("/admin")
    def admin_panel() -> str:
        endpoint = ""
        try:
            endpoint = settings_store.load().get("endpoint", "")
        except (OSError, ValueError):
            app.logger.exception("Error reading settings")
            flash("Failed to read settings", "error")
        product_lists = []
        for form_type, label in (("receipt", "Receipt & Issuance"), ("production", "Production & DC")):
            try:
                products = catalog.list_products(form_type)
            except (OSError, ValueError):
                app.logger.exception("Error reading product list for %s", form_type)
                products = []
            product_lists.append(
                {
                    "type": form_type,
                    "label": label,
                    "count": len(products),
                    "preview": products[:_PREVIEW_COUNT],
                }
            )
        return render_template(
            "admin.html", endpoint=endpoint, product_lists=product_lists
        )

    @app.post("/admin/settings")
    def admin_save_settings() -> Any:
        endpoint = request.form.get("endpoint", "").strip()
        try:
            settings_store.save(endpoint)
        except OSError as exc:
            app.logger.exception("Error saving settings")
            flash(f"Failed to save settings: {exc}", "error")
        else:
            flash("Settings saved successfully", "success")
        return redirect(url_for("admin_panel"))

    @app.post("/admin/products")
    def admin_upload_products() -> Any:
        upload = request.files.get("file")
        form_type = request.form.get("type", "")
        sheet_name = request.form.get("sheetName", "").strip()
        column_ref = request.form.get("columnRef", "").strip()
        if upload is None or upload.filename == "" or not sheet_name or not column_ref:
            flash("Please fill all fields and select a file.", "error")
            return redirect(url_for("admin_panel"))
        try:
            products = _ingest_upload(upload, form_type, sheet_name, column_ref)
        except ValueError as exc:
            flash(str(exc), "error")
        except OSError as exc:
            app.logger.exception("Product list upload failed")
            flash(f"Upload failed: {exc}", "error")
        else:
            flash(f"Success! Loaded {len(products)} products.", "success")
        return redirect(url_for("admin_panel"))

    return app

"""HTTP export service.

POST /process  multipart `files` + width/height/preset/fit/quality/format/watermark
GET  /me       {"pro": bool}
GET  /unlock   ?token=... sets the pro_access cookie when the token is valid
GET  /presets  the social and marketplace preset catalog
"""

from __future__ import annotations

import io
import zipfile
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from flask import Flask, jsonify, request, send_file
from flask_cors import CORS

from image_resizer.crop.session import ExportFormat
from image_resizer.errors import ImageResizerError, ValidationError
from image_resizer.image_engine.pipeline import EncodedImage, TransformParams, output_filename, transform_buffer
from image_resizer.logger import get_logger
from image_resizer.presets import MARKETPLACE_PRESETS, PresetCatalog, load_catalog
from image_resizer.settings_manager import SettingsManager

from .entitlement import COOKIE_NAME, MB, TierLimits, TokenEntitlement, token_from_request, validate_uploads

_logger = get_logger("service")

_COOKIE_MAX_AGE = 60 * 60 * 24 * 730
_MAX_WORKERS = 4


def _int_field(name: str) -> int | None:
    raw = (request.form.get(name) or "").strip()
    try:
        value = int(raw)
    except ValueError:
        return None
    return value if value > 0 else None


def _quality_field() -> int:
    try:
        q = int((request.form.get("quality") or "").strip())
    except ValueError:
        return 80
    return max(1, min(100, q))


def _resolve_preset(catalog: PresetCatalog, name: str) -> tuple[int, int] | None:
    if not name:
        return None
    if name in MARKETPLACE_PRESETS:
        p = MARKETPLACE_PRESETS[name]
        return p.width, p.height
    platform, _, preset = name.partition("/")
    if preset:
        try:
            p = catalog.resolve(platform, preset)
        except KeyError:
            _logger.debug("unknown preset ignored: %s", name)
            return None
        return p.width, p.height
    _logger.debug("unknown preset ignored: %s", name)
    return None


def create_app(
    settings: SettingsManager | None = None,
    catalog: PresetCatalog | None = None,
    entitlement: TokenEntitlement | None = None,
) -> Flask:
    settings = settings or SettingsManager()
    catalog = catalog or load_catalog(settings.get("presets_path"))
    entitlement = entitlement or TokenEntitlement(settings.pro_tokens)
    limits = TierLimits.from_settings(settings)
    watermark_text = str(settings.get("watermark_text"))

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = int((limits.pro_max_total_mb + 10) * MB)
    CORS(app)

    def is_entitled() -> bool:
        return entitlement.is_entitled(token_from_request(request))

    @app.errorhandler(ImageResizerError)
    def handle_error(e: ImageResizerError):
        if e.status >= 500:
            _logger.error("request failed: %s", e, exc_info=e)
            return jsonify({"error": "Error processing images.", "detail": str(e), "retryable": e.retryable}), e.status
        _logger.info("request rejected: %s", e)
        return jsonify({"error": str(e)}), e.status

    @app.errorhandler(413)
    def handle_too_large(e):
        _logger.info("request rejected: body exceeds %s bytes", app.config["MAX_CONTENT_LENGTH"])
        return jsonify({"error": "Upload exceeds the maximum request size."}), 400

    @app.get("/me")
    def me():
        return jsonify({"pro": is_entitled()})

    @app.get("/unlock")
    def unlock():
        token = str(request.args.get("token") or "")
        ok = entitlement.is_entitled(token)
        resp = jsonify({"ok": ok})
        if ok:
            resp.set_cookie(
                COOKIE_NAME, token, max_age=_COOKIE_MAX_AGE, path="/", httponly=True, samesite="Lax", secure=True
            )
        return resp

    @app.get("/presets")
    def presets():
        marketplace = {
            name: {"w": p.width, "h": p.height, "aspect": p.aspect} for name, p in MARKETPLACE_PRESETS.items()
        }
        return jsonify({"social": catalog.to_dict(), "marketplace": marketplace})

    @app.post("/process")
    def process():
        pro = is_entitled()
        files = request.files.getlist("files")
        uploads = [(f.filename or "image", f.read()) for f in files]
        validate_uploads([(name, len(data)) for name, data in uploads], pro, limits)

        width = _int_field("width")
        height = _int_field("height")
        preset = _resolve_preset(catalog, (request.form.get("preset") or "").strip())
        if preset is not None:
            width, height = preset
        fit = "cover" if request.form.get("fit") == "cover" else "inside"
        try:
            fmt = ExportFormat.parse(request.form.get("format") or "original")
        except ImageResizerError as e:
            raise ValidationError(str(e)) from e
        opt_out = pro and request.form.get("watermark") == "0"
        params = TransformParams(
            width=width,
            height=height,
            fit=fit,
            format=fmt,
            quality=_quality_field(),
            watermark_text=None if opt_out else watermark_text,
        )
        _logger.info("process: files=%d pro=%s size=%sx%s fit=%s fmt=%s", len(uploads), pro, width, height, fit, fmt.value)

        with ThreadPoolExecutor(max_workers=min(_MAX_WORKERS, len(uploads))) as pool:
            results: list[EncodedImage] = list(pool.map(lambda u: transform_buffer(u[1], params), uploads))

        names = _unique_names(
            [output_filename(name, width, height, r.extension) for (name, _), r in zip(uploads, results, strict=True)]
        )
        if len(results) == 1:
            resp = send_file(
                io.BytesIO(results[0].data),
                mimetype=results[0].mime_type,
                as_attachment=True,
                download_name=names[0],
            )
        else:
            buf = io.BytesIO()
            with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9) as zf:
                for name, r in zip(names, results, strict=True):
                    zf.writestr(name, r.data)
            buf.seek(0)
            resp = send_file(buf, mimetype="application/zip", as_attachment=True, download_name="resized_images.zip")
        resp.headers["Cache-Control"] = "no-store"
        return resp

    return app


def _unique_names(names: list[str]) -> list[str]:
    seen: dict[str, int] = {}
    out: list[str] = []
    for name in names:
        count = seen.get(name, 0)
        seen[name] = count + 1
        if count:
            stem, dot, ext = name.rpartition(".")
            name = f"{stem}-{count + 1}{dot}{ext}" if dot else f"{name}-{count + 1}"
        out.append(name)
    return out


def serve(settings: SettingsManager | None = None, host: str = "127.0.0.1", port: int = 3000, **kwargs: Any) -> None:
    app = create_app(settings)
    _logger.info("service listening on %s:%s", host, port)
    app.run(host=host, port=port, **kwargs)

import logging
import secrets
import tempfile
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlencode

from pydantic import BaseModel
from fastapi import FastAPI, Form, HTTPException, Query, Request
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from starlette.datastructures import UploadFile

from release_manager import __version__
from release_manager.app_container import AppContainer, build_container
from release_manager.config import Config
from release_manager.domain.errors import ReleaseManagerError, StorageError
from release_manager.domain.releases import (
    DEFAULT_ORDER,
    DEFAULT_ORDER_BY,
    SORTABLE_COLUMNS,
    ReleasePage,
    ReleaseRecord,
    UploadedArtifact,
)
from release_manager.services import listing
from release_manager.services.artifact_store import ArtifactStore
from release_manager.services.error_codes import error_payload, get_catalog_entry
from release_manager.services.nonce import NONCE_ACTION
from release_manager.services.settings import apply_settings_update
from release_manager.util import is_web_url

logger = logging.getLogger(__name__)

COLUMNS: List[Dict[str, str]] = [
    {"key": "plugin_name", "label": "Plugin"},
    {"key": "plugin_version", "label": "Version"},
    {"key": "gh_commit_tag", "label": "GH Tag"},
    {"key": "gh_commit_timestamp", "label": "GH Commit Date"},
    {"key": "gh_commit_url", "label": "GH Commit Hash"},
    {"key": "build_file", "label": "Release Download"},
    {"key": "ci_job_url", "label": "CI Job"},
]

_UI_COOKIE = "rm_ui_token"
_UPLOAD_FIELD = "build_file"


class SettingsUpdateRequest(BaseModel):
    nonce: str
    auth_token: str = ""
    storage_path: str = ""


def _release_to_dict(record: ReleaseRecord) -> Dict[str, Any]:
    return asdict(record)


def _page_to_dict(page: ReleasePage) -> Dict[str, Any]:
    return {
        "items": [_release_to_dict(r) for r in page.items],
        "total_items": page.total_items,
        "total_pages": page.total_pages,
        "page": page.page,
        "page_size": page.page_size,
        "orderby": page.order_by,
        "order": page.order,
    }


def _error_response(code: str, message: str = "") -> JSONResponse:
    entry = get_catalog_entry(code)
    return JSONResponse(
        {"code": code, "message": message or entry.user_message, "data": {"status": entry.http_status}},
        status_code=entry.http_status,
    )


def _exception_response(exc: ReleaseManagerError) -> JSONResponse:
    return JSONResponse(error_payload(exc), status_code=get_catalog_entry(exc.code).http_status)


def _format_timestamp(value: int) -> str:
    try:
        dt = datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return str(value)
    return f"{dt:%B} {dt.day}, {dt:%Y @ %H:%M:%S}"


def _repository_url(commit_url: str) -> str:
    return commit_url.split("/commit", 1)[0].rstrip("/") if "/commit" in commit_url else ""


def _release_row(record: ReleaseRecord, store: ArtifactStore) -> Dict[str, Any]:
    download = store.resolve(record.build_file) if record.build_file else None
    commit_url = record.gh_commit_url if is_web_url(record.gh_commit_url) else ""
    return {
        "id": record.id,
        "plugin_name": record.plugin_name,
        "plugin_url": _repository_url(commit_url),
        "plugin_version": record.plugin_version or "N/A",
        "gh_commit_tag": record.gh_commit_tag or "N/A",
        "commit_date": _format_timestamp(record.gh_commit_timestamp),
        "gh_commit_url": commit_url,
        "commit_hash": commit_url.rstrip("/").rsplit("/", 1)[-1],
        "download_url": f"/files/{quote(record.build_file)}" if download is not None else "",
        "ci_job_url": record.ci_job_url if is_web_url(record.ci_job_url) else "",
    }


def _listing_url(page: int, order: str, order_by: str) -> str:
    return "/?" + urlencode({"paged": page, "order": order, "orderby": order_by})


def _column_headers(page: ReleasePage) -> List[Dict[str, Any]]:
    headers: List[Dict[str, Any]] = []
    for column in COLUMNS:
        key = column["key"]
        sortable = key in SORTABLE_COLUMNS
        sorted_here = sortable and key == page.order_by
        next_order = ("asc" if page.order == "desc" else "desc") if sorted_here else "asc"
        headers.append(
            {
                **column,
                "sortable": sortable,
                "sorted": sorted_here,
                "order": page.order if sorted_here else "",
                "href": _listing_url(1, next_order, key) if sortable else "",
            }
        )
    return headers


def _pagination(page: ReleasePage) -> Dict[str, Any]:
    last = max(1, page.total_pages)

    def link(target: int) -> str:
        return _listing_url(target, page.order, page.order_by)

    return {
        "total_items": page.total_items,
        "total_pages": page.total_pages,
        "page": page.page,
        "first_url": link(1) if page.page > 1 else "",
        "prev_url": link(min(page.page - 1, last)) if page.page > 1 else "",
        "next_url": link(page.page + 1) if page.page < page.total_pages else "",
        "last_url": link(last) if page.page < page.total_pages else "",
    }


def _safe_next(target: str) -> str:
    """Only same-site paths; protocol-relative targets fall back to the listing."""
    if not target.startswith("/") or target.startswith(("//", "/\\")) or target == "/login":
        return "/"
    return target


async def _spool_upload(upload: UploadFile) -> Path:
    suffix = Path(upload.filename or "").suffix
    with tempfile.NamedTemporaryFile(prefix="release-upload-", suffix=suffix, delete=False) as fh:
        while True:
            chunk = await upload.read(65536)
            if not chunk:
                break
            fh.write(chunk)
    return Path(fh.name)


def create_app_with_config(config: Config) -> FastAPI:
    return create_app(build_container(config))


def create_app(container: AppContainer) -> FastAPI:
    config = container.config
    base_dir = Path(__file__).resolve().parent
    templates = Jinja2Templates(directory=str(base_dir / "templates"))
    app = FastAPI(title="Release Manager", version=__version__)
    app.mount("/static", StaticFiles(directory=str(base_dir / "static")), name="static")

    def _resolve_api_token(request: Request) -> str:
        header = (request.headers.get("authorization") or "").strip()
        if header.lower().startswith("bearer "):
            return header[7:].strip()
        return header or (request.headers.get("x-release-token") or "").strip()

    def _ui_authorized(request: Request) -> bool:
        secret = config.ui_secret
        if not secret:
            return True
        return secrets.compare_digest(request.cookies.get(_UI_COOKIE, "").encode("utf-8"), secret.encode("utf-8"))

    def _ui_auth_redirect(request: Request) -> Optional[RedirectResponse]:
        """Redirect to /login when a UI secret is configured and the cookie does not match."""
        if _ui_authorized(request):
            return None
        return RedirectResponse(url=f"/login?next={request.url.path}", status_code=303)

    def _table_context(request: Request, paged: Any, order: Optional[str], orderby: Optional[str]) -> Dict[str, Any]:
        service = container.release_service()
        page = listing.query(
            service.list_releases(),
            order_by=orderby or DEFAULT_ORDER_BY,
            order_direction=order or DEFAULT_ORDER,
            page=paged,
            page_size=config.page_size,
        )
        store = service.artifact_store()
        return {
            "request": request,
            "settings": service.settings,
            "page": page,
            "rows": [_release_row(r, store) for r in page.items],
            "columns": _column_headers(page),
            "pagination": _pagination(page),
        }

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {
            "status": "ok",
            "version": __version__,
            "releases": len(container.repository.list_all()),
        }

    @app.post("/api/releases")
    async def add_new_release(request: Request):
        service = container.release_service()
        if not service.check_authorization(_resolve_api_token(request)):
            client = request.client.host if request.client else "?"
            logger.warning("Rejected release submission from %s: bad token", client)
            return _error_response("rest_forbidden")
        form = await request.form()
        spooled: Optional[Path] = None
        try:
            fields = {k: v for k, v in form.items() if not isinstance(v, UploadFile)}
            upload = form.get(_UPLOAD_FIELD)
            artifact: Optional[UploadedArtifact] = None
            if isinstance(upload, UploadFile) and upload.filename:
                spooled = await _spool_upload(upload)
                artifact = UploadedArtifact(path=spooled, filename=upload.filename)
            record = service.submit(fields, artifact)
        except ReleaseManagerError as exc:
            return _exception_response(exc)
        finally:
            await form.close()
            if spooled is not None:
                spooled.unlink(missing_ok=True)
        return JSONResponse(_release_to_dict(record), status_code=201)

    @app.get("/api/releases")
    async def list_releases(
        request: Request,
        paged: str = "1",
        order: str = DEFAULT_ORDER,
        orderby: str = DEFAULT_ORDER_BY,
    ):
        service = container.release_service()
        if not service.check_authorization(_resolve_api_token(request)):
            return _error_response("rest_forbidden")
        page = listing.query(
            service.list_releases(),
            order_by=orderby,
            order_direction=order,
            page=paged,
            page_size=config.page_size,
        )
        return _page_to_dict(page)

    @app.get("/api/releases/{release_id}")
    async def get_release(request: Request, release_id: str):
        service = container.release_service()
        if not service.check_authorization(_resolve_api_token(request)):
            return _error_response("rest_forbidden")
        record = container.repository.get(release_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Release not found")
        return _release_to_dict(record)

    @app.get("/login", response_class=HTMLResponse)
    async def login_page(request: Request, next: str = "/"):
        safe_next = _safe_next(next)
        return templates.TemplateResponse(request, "login.html", {"next": safe_next, "error": ""})

    @app.post("/login")
    async def login_submit(request: Request, secret: str = Form(""), next: str = Form("/")):
        ui_secret = config.ui_secret
        safe_next = _safe_next(next)
        if ui_secret and secrets.compare_digest(secret.encode("utf-8"), ui_secret.encode("utf-8")):
            resp = RedirectResponse(url=safe_next, status_code=303)
            resp.set_cookie(
                _UI_COOKIE, ui_secret,
                httponly=True, samesite="lax",
                max_age=60 * 60 * 24 * 7,  # 1 week
            )
            return resp
        return templates.TemplateResponse(
            request,
            "login.html",
            {"next": safe_next, "error": "Incorrect secret. Please try again."},
            status_code=401,
        )

    @app.get("/logout")
    async def logout():
        resp = RedirectResponse(url="/login", status_code=303)
        resp.delete_cookie(_UI_COOKIE)
        return resp

    @app.get("/", response_class=HTMLResponse)
    async def releases_page(
        request: Request,
        paged: str = "1",
        order: str = "",
        orderby: str = "",
        error: str = "",
        saved: str = "",
    ):
        if (redir := _ui_auth_redirect(request)) is not None:
            return redir
        context = _table_context(request, paged, order, orderby)
        context.update(
            {
                "nonce": container.nonces.create(NONCE_ACTION),
                "upload_root": str(config.upload_root),
                "default_order": DEFAULT_ORDER,
                "default_order_by": DEFAULT_ORDER_BY,
                "error": error,
                "saved": saved == "1",
            }
        )
        return templates.TemplateResponse(request, "releases.html", context)

    @app.get("/ajax/releases")
    async def releases_partial(
        request: Request,
        nonce: str = Query("", alias="_nonce"),
        paged: str = "1",
        order: str = "",
        orderby: str = "",
        no_placeholder: str = "",
    ):
        if not _ui_authorized(request):
            return _error_response("rest_forbidden")
        if not container.nonces.verify(nonce, NONCE_ACTION):
            return _error_response("invalid_nonce")
        context = _table_context(request, paged, order, orderby)
        context["no_placeholder"] = bool(no_placeholder)
        pagination = templates.get_template("partials/pagination.html")
        return {
            "rows": templates.get_template("partials/rows.html").render(context),
            "pagination": {
                "top": pagination.render({**context, "which": "top"}),
                "bottom": pagination.render({**context, "which": "bottom"}),
            },
            "column_headers": templates.get_template("partials/column_headers.html").render(context),
        }

    @app.post("/settings")
    async def save_settings_form(
        request: Request,
        nonce: str = Form("", alias="_nonce"),
        auth_token: str = Form(""),
        storage_path: str = Form(""),
    ):
        if (redir := _ui_auth_redirect(request)) is not None:
            return redir
        if not container.nonces.verify(nonce, NONCE_ACTION):
            return RedirectResponse(url="/?" + urlencode({"error": get_catalog_entry("invalid_nonce").user_message}), status_code=303)
        try:
            apply_settings_update(
                container.settings_store,
                upload_root=config.upload_root,
                auth_token=auth_token,
                storage_path=storage_path,
            )
        except StorageError as exc:
            return RedirectResponse(url="/?" + urlencode({"error": exc.message}), status_code=303)
        return RedirectResponse(url="/?saved=1", status_code=303)

    @app.post("/api/settings")
    async def save_settings_api(request: Request, body: SettingsUpdateRequest):
        if not _ui_authorized(request):
            return _error_response("rest_forbidden")
        if not container.nonces.verify(body.nonce, NONCE_ACTION):
            return _error_response("invalid_nonce")
        try:
            settings = apply_settings_update(
                container.settings_store,
                upload_root=config.upload_root,
                auth_token=body.auth_token,
                storage_path=body.storage_path,
            )
        except StorageError as exc:
            return _exception_response(exc)
        return {"auth_token_set": bool(settings.auth_token), "storage_path": settings.storage_path}

    @app.get("/files/{filename}")
    async def download_build(request: Request, filename: str):
        if (redir := _ui_auth_redirect(request)) is not None:
            return redir
        path = container.release_service().artifact_store().resolve(filename)
        if path is None:
            raise HTTPException(status_code=404, detail="Build file not found")
        return FileResponse(str(path), filename=path.name)

    return app

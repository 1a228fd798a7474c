"""FastAPI server exposing dstask as a web task board."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from fastapi import FastAPI, Form, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from loguru import logger
from starlette.middleware.sessions import SessionMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware

from dstui.config import Settings
from dstui.dstask import CommandResult, DstaskClient, DstaskError
from dstui.dstask.models import collect_tags, group_by_status, summarize

from .flash import get_flash, set_flash
from .helpers import (
    PRIORITIES,
    build_filter,
    diff_tags,
    is_active_nav,
    parse_tags,
    priority_class,
    status_class,
)

WEB_DIR = Path(__file__).parent
SEE_OTHER = 303

# Runboard column -> client call that moves a task into it.
STATUS_ACTIONS = {
    "active": "start",
    "paused": "stop",
    "pending": "stop",
}


class DstuiServer:
    """FastAPI server for the dstask web front end."""

    def __init__(self, settings: Settings, client: Any | None = None):
        """
        Initialize the server.

        Args:
            settings: Resolved application settings
            client: Object with the ``DstaskClient`` interface. Defaults to a
                client built from ``settings``.
        """
        self.settings = settings
        self.client = client or DstaskClient(
            binary=settings.dstask_bin, timeout=settings.command_timeout
        )
        self.app = FastAPI(title="dstui", version="0.1.0")
        self.templates = Jinja2Templates(directory=str(WEB_DIR / "templates"))
        self.templates.env.globals.update(
            get_flash=get_flash,
            is_active_nav=is_active_nav,
            priority_class=priority_class,
            status_class=status_class,
            priorities=PRIORITIES,
        )
        self._setup_middleware()
        self._setup_routes()

    def _setup_middleware(self) -> None:
        self.app.add_middleware(
            SessionMiddleware, secret_key=self.settings.session_secret
        )
        if self.settings.permitted_hosts is not None:
            allowed = ["*"] if self.settings.allow_any_host else self.settings.permitted_hosts
            self.app.add_middleware(TrustedHostMiddleware, allowed_hosts=allowed)

    def _render(
        self, request: Request, name: str, status_code: int = 200, **context: Any
    ) -> HTMLResponse:
        return self.templates.TemplateResponse(
            request, name, context, status_code=status_code
        )

    def _projects(self) -> list:
        try:
            return self.client.projects()
        except DstaskError as exc:
            logger.warning(f"Could not list projects: {exc}")
            return []

    def _flash_error(self, request: Request, message: str) -> None:
        logger.warning(message)
        set_flash(request, "error", message)

    def _flash_result(
        self, request: Request, result: CommandResult, success_message: str
    ) -> None:
        if result.success:
            set_flash(request, "success", success_message)
        else:
            self._flash_error(request, result.message)

    @staticmethod
    def _redirect(url: str = "/") -> RedirectResponse:
        return RedirectResponse(url, status_code=SEE_OTHER)

    @classmethod
    def _redirect_back(cls, request: Request) -> RedirectResponse:
        return cls._redirect(request.headers.get("referer") or "/")

    def _task_list(
        self, request: Request, loader: str, title: str
    ) -> HTMLResponse:
        try:
            tasks = getattr(self.client, loader)()
        except DstaskError as exc:
            self._flash_error(request, str(exc))
            tasks = []
        return self._render(
            request,
            "tasks.html",
            tasks=tasks,
            projects=self._projects(),
            all_tags=collect_tags(tasks),
            view_title=title,
        )

    def _task_action(
        self, request: Request, task_id: str, action: str, success_message: str
    ) -> RedirectResponse:
        try:
            result = getattr(self.client, action)(task_id)
        except DstaskError as exc:
            self._flash_error(request, str(exc))
        else:
            self._flash_result(request, result, success_message)
        return self._redirect_back(request)

    def _setup_routes(self) -> None:
        """Setup FastAPI routes."""
        static_dir = WEB_DIR / "static"
        if static_dir.exists():
            self.app.mount(
                "/static", StaticFiles(directory=str(static_dir)), name="static"
            )

        @self.app.get("/", response_class=HTMLResponse)
        def index(
            request: Request,
            project: str = "",
            priority: str = "",
            tag: str = "",
            q: str = "",
        ) -> HTMLResponse:
            """Open tasks, optionally narrowed by the filter form."""
            task_filter = build_filter(project, priority, tag, q)
            try:
                tasks = self.client.tasks(filter=task_filter or None)
            except DstaskError as exc:
                self._flash_error(request, str(exc))
                tasks = []
            return self._render(
                request,
                "tasks.html",
                tasks=tasks,
                projects=self._projects(),
                all_tags=collect_tags(tasks),
                current_project=project,
                current_priority=priority,
                current_tag=tag,
                current_query=q,
                show_filters=True,
            )

        @self.app.get("/active", response_class=HTMLResponse)
        def active(request: Request) -> HTMLResponse:
            return self._task_list(request, "active_tasks", "Active Tasks")

        @self.app.get("/paused", response_class=HTMLResponse)
        def paused(request: Request) -> HTMLResponse:
            return self._task_list(request, "paused_tasks", "Paused Tasks")

        @self.app.get("/resolved", response_class=HTMLResponse)
        def resolved(request: Request) -> HTMLResponse:
            return self._task_list(request, "resolved_tasks", "Resolved Tasks")

        @self.app.get("/projects", response_class=HTMLResponse)
        def projects(request: Request) -> HTMLResponse:
            try:
                project_list = self.client.projects()
            except DstaskError as exc:
                self._flash_error(request, str(exc))
                project_list = []
            return self._render(request, "projects.html", projects=project_list)

        @self.app.get("/runboard", response_class=HTMLResponse)
        def runboard(request: Request) -> HTMLResponse:
            """Kanban view of open tasks grouped by status."""
            try:
                tasks = self.client.tasks()
            except DstaskError as exc:
                self._flash_error(request, str(exc))
                tasks = []
            columns = group_by_status(tasks)
            return self._render(
                request,
                "runboard.html",
                pending_tasks=columns["pending"],
                active_tasks=columns["active"],
                paused_tasks=columns["paused"],
                projects=self._projects(),
                all_tags=collect_tags(tasks),
            )

        @self.app.get("/sync", response_class=HTMLResponse)
        def sync_page(request: Request) -> HTMLResponse:
            return self._render(
                request,
                "sync.html",
                sync_configured=self.settings.sync_configured,
                sync_script=self.settings.sync_script,
            )

        @self.app.post("/sync")
        def sync() -> JSONResponse:
            result = self.client.sync(self.settings.sync_script)
            return JSONResponse(
                result.to_dict(), status_code=200 if result.success else 422
            )

        @self.app.get("/api/tasks")
        def api_tasks() -> JSONResponse:
            """Get a summary of all open tasks."""
            try:
                tasks = self.client.tasks()
            except DstaskError as exc:
                return JSONResponse(
                    {"success": False, "message": str(exc)}, status_code=500
                )
            return JSONResponse(summarize(tasks))

        @self.app.get("/tasks/new", response_class=HTMLResponse)
        def new_task(request: Request) -> HTMLResponse:
            return self._render(
                request,
                "task_form.html",
                task={},
                projects=self._projects(),
                is_new=True,
            )

        @self.app.post("/tasks")
        def create_task(
            request: Request,
            summary: str = Form(""),
            project: str = Form(""),
            priority: str = Form(""),
            tags: str = Form(""),
        ):
            try:
                result = self.client.add(
                    summary=summary,
                    project=project,
                    priority=priority,
                    tags=parse_tags(tags),
                )
            except DstaskError as exc:
                self._flash_error(request, str(exc))
                return self._redirect()

            if result.success:
                logger.info(f"Created task {summary!r}")
                set_flash(request, "success", "Task created successfully")
                return self._redirect()

            self._flash_error(request, result.message)
            submitted = {
                "summary": summary,
                "project": project,
                "priority": priority,
                "tags": tags,
            }
            return self._render(
                request,
                "task_form.html",
                task=submitted,
                projects=self._projects(),
                is_new=True,
            )

        @self.app.get("/tasks/{task_id}/edit", response_class=HTMLResponse)
        def edit_task(request: Request, task_id: str):
            try:
                task = self.client.task(task_id)
            except DstaskError as exc:
                self._flash_error(request, str(exc))
                return self._redirect()
            if task is None:
                self._flash_error(request, "Task not found")
                return self._redirect()

            form = task.to_dict()
            form["tags"] = ", ".join(task.tags)
            form["original_tags"] = ",".join(task.tags)
            return self._render(
                request,
                "task_form.html",
                task=form,
                projects=self._projects(),
                is_new=False,
            )

        @self.app.post("/tasks/{task_id}")
        def update_task(
            request: Request,
            task_id: str,
            project: str = Form(""),
            priority: str = Form(""),
            tags: str = Form(""),
            original_tags: str = Form(""),
        ) -> RedirectResponse:
            to_add, to_remove = diff_tags(
                parse_tags(tags),
                [tag.strip() for tag in original_tags.split(",") if tag.strip()],
            )
            try:
                result = self.client.modify(
                    task_id,
                    project=project,
                    priority=priority,
                    add_tags=to_add,
                    remove_tags=to_remove,
                )
            except DstaskError as exc:
                self._flash_error(request, str(exc))
            else:
                self._flash_result(request, result, "Task updated successfully")
            return self._redirect()

        @self.app.post("/tasks/{task_id}/start")
        def start_task(request: Request, task_id: str) -> RedirectResponse:
            return self._task_action(request, task_id, "start", "Task started")

        @self.app.post("/tasks/{task_id}/stop")
        def stop_task(request: Request, task_id: str) -> RedirectResponse:
            return self._task_action(request, task_id, "stop", "Task stopped")

        @self.app.post("/tasks/{task_id}/done")
        def done_task(request: Request, task_id: str) -> RedirectResponse:
            return self._task_action(request, task_id, "done", "Task completed")

        @self.app.post("/tasks/{task_id}/remove")
        def remove_task(request: Request, task_id: str) -> RedirectResponse:
            return self._task_action(request, task_id, "remove", "Task removed")

        @self.app.post("/tasks/{task_id}/status")
        def update_status(task_id: str, status: str = Form("")) -> JSONResponse:
            """Move a task between runboard columns."""
            action = STATUS_ACTIONS.get(status)
            if action is None:
                return JSONResponse(
                    {"success": False, "message": "Invalid status"}, status_code=422
                )
            try:
                result = getattr(self.client, action)(task_id)
            except DstaskError as exc:
                logger.warning(f"Status change for task {task_id} failed: {exc}")
                return JSONResponse(
                    {"success": False, "message": str(exc)}, status_code=500
                )
            if not result.success:
                return JSONResponse(
                    {"success": False, "message": result.message}, status_code=422
                )
            return JSONResponse({"success": True, "message": "Status updated"})

    def run(self) -> None:
        """Serve the app until interrupted."""
        import uvicorn

        logger.info(
            f"Serving dstui at http://{self.settings.host}:{self.settings.port}"
        )
        uvicorn.run(
            self.app,
            host=self.settings.host,
            port=self.settings.port,
            log_config=None,
        )


def create_app(settings: Settings, client: Any | None = None) -> FastAPI:
    """Build the FastAPI application without serving it."""
    return DstuiServer(settings, client=client).app


def start_server(settings: Settings) -> DstuiServer:
    """
    Build the server and serve it in the foreground.

    Args:
        settings: Resolved application settings

    Returns:
        The server instance, once uvicorn has shut down
    """
    server = DstuiServer(settings)
    server.run()
    return server

# patients/ui/pages/sync_now.py
from datetime import timezone

import flet as ft

from core.settings import UI
from services.sync_scheduler import run_blocking
from services.sync_service import SyncState, read_sync_log
from ui.dialogs import show_snack, sync_outcome_message


_STATE_LABELS = {
    SyncState.IDLE: "Idle",
    SyncState.DRAINING: "Syncing…",
    SyncState.SUCCEEDED: "Up to date",
    SyncState.PARTIALLY_FAILED: "Some records are still pending",
}


class SyncPage:
    def __init__(self, app):
        self.app = app

        self.state_text = ft.Text(size=16, weight=ft.FontWeight.W_600)
        self.queue_text = ft.Text()
        self.last_sync_text = ft.Text()
        self.last_error_text = ft.Text(color=ft.Colors.ERROR)
        self.progress = ft.ProgressRing(width=18, height=18, visible=False)

        self.sync_btn = ft.ElevatedButton("Sync now", icon=ft.Icons.SYNC, on_click=self.sync_now)
        self.refresh_log_btn = ft.TextButton("Refresh log", icon=ft.Icons.ARTICLE, on_click=self.refresh)
        self.log_view = ft.Text("", selectable=True, size=12)

        content = ft.Column(
            controls=[
                ft.Text("Sync", size=24, weight=ft.FontWeight.BOLD),
                ft.Row([self.state_text, self.progress], spacing=8),
                self.queue_text,
                self.last_sync_text,
                self.last_error_text,
                self.sync_btn,
                ft.Column([
                    ft.Text("Sync log", size=18, weight=ft.FontWeight.W_600),
                    ft.Container(
                        ft.Column([self.log_view], scroll=ft.ScrollMode.AUTO),
                        height=240,
                        padding=10,
                        bgcolor=ft.Colors.SURFACE_CONTAINER_HIGHEST,
                    ),
                    self.refresh_log_btn,
                ], spacing=8),
            ],
            expand=True,
            spacing=16,
        )
        self.view = ft.Container(content=content, expand=True, padding=20)

    def _format_dt(self, value) -> str:
        if not value:
            return "never"
        if getattr(value, "tzinfo", None) is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone().strftime("%Y-%m-%d %H:%M:%S %Z")

    def show_state(self, state: SyncState):
        self.state_text.value = _STATE_LABELS.get(state, state.value)
        busy = state is SyncState.DRAINING
        self.progress.visible = busy
        self.sync_btn.disabled = busy

    async def refresh(self, _=None):
        status = await run_blocking(self.app.sync_service.status)
        log = await run_blocking(read_sync_log, UI.sync_log_lines)
        self.show_state(self.app.sync_service.state)
        self.queue_text.value = f"Pending records: {status.get('queueSize', 0)}"
        self.last_sync_text.value = "Last sync: " + self._format_dt(status.get("lastSyncAt"))
        self.last_error_text.value = status.get("lastError") or ""
        self.log_view.value = log
        self.app.page.update()

    async def sync_now(self, _):
        result = await self.app.scheduler.request_sync_now()
        show_snack(self.app.page, sync_outcome_message(result), error=not result.succeeded)
        await self.refresh()

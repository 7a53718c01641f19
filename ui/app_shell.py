# ui/app_shell.py
from __future__ import annotations

import asyncio
import logging

import flet as ft

from core.settings import SYNC, UI
from services.patient_service import PatientService
from services.patients_api import PatientsApi
from services.pending_ops_queue import PendingOpsQueue
from services.records import PatientRecords
from services.sync_scheduler import SyncScheduler, run_blocking
from services.sync_service import SyncService, SyncState
from storage.config import resolve_base_url, resolve_token

from .pages.patients import PatientsPage
from .pages.registration import RegistrationPage
from .pages.sync_now import SyncPage
from .pages.visit import VisitPage


logger = logging.getLogger("patients.ui")

_PATIENTS, _REGISTER, _VISIT, _SYNC = range(4)


class AppShell:
    def __init__(self, page: ft.Page):
        self.page = page

        self.page.title = UI.app_title
        self.page.horizontal_alignment = ft.CrossAxisAlignment.STRETCH
        self.page.vertical_alignment = ft.MainAxisAlignment.START

        # --- services (before the pages) ---
        self.records = PatientRecords()
        self.queue = PendingOpsQueue()
        self.api = PatientsApi(resolve_base_url(), token_provider=resolve_token)
        self.patients = PatientService(self.records, self.queue, self.api)
        self.sync_service = SyncService(self.api, self.records, self.queue)
        self.scheduler = SyncScheduler(self.sync_service)
        self.sync_service.subscribe(self._on_sync_state)

        # --- pages ---
        self._patients = PatientsPage(self)
        self._register = RegistrationPage(self)
        self._visit = VisitPage(self)
        self._sync = SyncPage(self)

        self.content = ft.Container(expand=True)
        self.sync_badge = ft.Text("", size=11)

        self.nav = ft.NavigationRail(
            selected_index=_PATIENTS,
            label_type=ft.NavigationRailLabelType.ALL,
            min_width=90,
            min_extended_width=200,
            group_alignment=-0.9,
            on_change=self.on_nav_change,
            trailing=ft.Container(self.sync_badge, padding=8),
            destinations=[
                ft.NavigationRailDestination(
                    icon=ft.Icons.PEOPLE_OUTLINE,
                    selected_icon=ft.Icons.PEOPLE,
                    label="Patients",
                ),
                ft.NavigationRailDestination(
                    icon=ft.Icons.PERSON_ADD_ALT,
                    selected_icon=ft.Icons.PERSON_ADD,
                    label="Register",
                ),
                ft.NavigationRailDestination(
                    icon=ft.Icons.MONITOR_HEART_OUTLINED,
                    selected_icon=ft.Icons.MONITOR_HEART,
                    label="Visit",
                ),
                ft.NavigationRailDestination(
                    icon=ft.Icons.CLOUD_SYNC_OUTLINED,
                    selected_icon=ft.Icons.CLOUD_SYNC,
                    label="Sync",
                ),
            ],
        )

        self.root = ft.Row(
            controls=[
                ft.Container(self.nav, width=88),
                ft.VerticalDivider(width=1),
                self.content,
            ],
            expand=True,
            spacing=0,
        )

        self._scheduler_task: asyncio.Future | None = None

    # ---------- mounting ----------
    def mount(self):
        self.page.controls.clear()
        self.page.add(self.root)
        self.content.content = self._patients.view
        self.page.update()

        self.page.run_task(self._patients.load)
        self.page.run_task(self._refresh_badge)
        if SYNC.enabled:
            self._scheduler_task = self.page.run_task(self.scheduler.run_forever)
        self.page.on_disconnect = lambda e: self.shutdown()

    def shutdown(self):
        self.scheduler.stop()
        self.sync_service.unsubscribe(self._on_sync_state)

    # ---------- navigation ----------
    def _select(self, index: int):
        self.nav.selected_index = index
        if index == _PATIENTS:
            self.content.content = self._patients.view
            self.page.run_task(self._patients.load)
        elif index == _REGISTER:
            self.content.content = self._register.view
        elif index == _VISIT:
            self.content.content = self._visit.view
        else:
            self.content.content = self._sync.view
            self.page.run_task(self._sync.refresh)
        self.page.update()

    def on_nav_change(self, e: ft.ControlEvent):
        index = int(e.control.selected_index)
        self._select(index)
        if index == _VISIT:
            self.page.run_task(self._visit.load)

    def show_patients(self):
        self._select(_PATIENTS)

    def open_visit(self, patient):
        self._select(_VISIT)
        self.page.run_task(self._visit.load, patient)

    # ---------- sync hooks ----------
    def after_write(self):
        self.page.run_task(self._refresh_badge)

    async def _refresh_badge(self):
        try:
            pending = await run_blocking(self.sync_service.pending_count)
        except Exception:
            logger.exception("Could not count pending records")
            return
        self.sync_badge.value = f"{pending} pending" if pending else ""
        self.page.update()

    def _on_sync_state(self, state: SyncState):
        # called from the sync worker thread
        self._sync.show_state(state)
        if state is not SyncState.DRAINING:
            self.page.run_task(self._refresh_badge)
        self.page.update()
